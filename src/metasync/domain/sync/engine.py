"""Page orchestrator for full and delta synchronisation runs.

A run moves through ``RunState``::

    PREPARING -> PROCESSING_PAGE[1..N] -> RESOLVING_CROSS_PAGE_REFERENCES
              -> WATERMARK_UPDATE -> COMPLETE | CANCELLED | FAILED

Every page runs teardown (pass 1) for all of its CSOs before reconcile
(pass 2), then deferred reference flow, then one flush and one commit. Pages
are committed independently: cancelling or failing a run never rolls back a
page that was already committed.
"""

from __future__ import annotations

import logging
import threading
import traceback
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from itertools import batched
from typing import TYPE_CHECKING

from metasync.domain.model import (
    ActivityStatus,
    ConnectedSystemObjectStatus,
    ExecutionErrorType,
    ObjectChangeType,
    SyncConfigurationError,
    SyncRunType,
    ValidationSeverity,
    utc_now,
)

from .batch import PageBatch, SyncContext
from .drift import build_import_mapping_cache
from .exports import RuleBasedExportEvaluator
from .expressions import FormulaEvaluator
from .flush import flush_page
from .matching import AttributeMatcher
from .reconcile import reconcile_object
from .references import flow_deferred_reference, resolve_cross_page_references
from .summary import completion_status, summarize
from .teardown import teardown_object

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime
    from uuid import UUID

    from metasync.domain.model import (
        Activity,
        ConnectedSystemObject,
        RunProfileExecutionItem,
        SyncConfiguration,
    )
    from metasync.domain.ports import (
        ExportEvaluator,
        MetaverseObjectMatcher,
        SyncRepositories,
        SyncUnitOfWork,
    )

    from .expressions import ExpressionEvaluator


log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 200


class RunState(StrEnum):
    PREPARING = "preparing"
    PROCESSING_PAGE = "processing_page"
    RESOLVING_CROSS_PAGE_REFERENCES = "resolving_cross_page_references"
    WATERMARK_UPDATE = "watermark_update"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancellationToken:
    """Thread-safe cancellation flag checked between connected system objects."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(slots=True)
class SyncEngine:
    """Run full and delta synchronisation for one connected system at a time."""

    unit_of_work_factory: Callable[[], SyncUnitOfWork]
    configuration: SyncConfiguration
    page_size: int = DEFAULT_PAGE_SIZE
    change_tracking: bool = True
    evaluator: ExpressionEvaluator = field(default_factory=FormulaEvaluator)
    matcher_factory: Callable[[SyncRepositories], MetaverseObjectMatcher] | None = None
    export_evaluator_factory: Callable[[SyncRepositories], ExportEvaluator] | None = None
    state: RunState = field(default=RunState.PREPARING, init=False)

    def run(
        self,
        activity: Activity,
        *,
        cancellation: CancellationToken | None = None,
    ) -> Activity:
        """Synchronise ``activity.connected_system_id`` and return the finished activity.

        Systemic errors (``SyncConfigurationError`` and anything raised outside
        single-object processing) mark the activity failed and are re-raised.
        """

        if self.page_size < 1:
            raise ValueError("page_size must be positive")
        token = cancellation or CancellationToken()
        self._transition(RunState.PREPARING, activity)

        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            repositories.activities.add(activity)
            uow.commit()

            context: SyncContext | None = None
            try:
                context = self._prepare(activity, uow)
                self._process(context, uow, token)
            except Exception as exc:
                log.exception("Synchronisation run %s failed", activity.id)
                uow.rollback()
                self._finish(
                    activity,
                    repositories,
                    status=ActivityStatus.FAILED,
                    items=context.execution_items if context is not None else [],
                    error_message=str(exc),
                )
                uow.commit()
                raise

            if token.cancelled:
                status = ActivityStatus.CANCELLED
            else:
                status = completion_status(context.execution_items)
            self._finish(activity, repositories, status=status, items=context.execution_items)
            uow.commit()
        return activity

    # Stages -------------------------------------------------------------------

    def _prepare(self, activity: Activity, uow: SyncUnitOfWork) -> SyncContext:
        repositories = uow.repositories
        configuration = self.configuration
        _raise_for_invalid_rules(configuration)
        connected_system = configuration.connected_system(activity.connected_system_id)

        matcher = (
            self.matcher_factory(repositories)
            if self.matcher_factory is not None
            else AttributeMatcher(repositories.metaverse_objects)
        )
        export_evaluator = (
            self.export_evaluator_factory(repositories)
            if self.export_evaluator_factory is not None
            else RuleBasedExportEvaluator(
                configuration,
                repositories.connected_system_objects,
                repositories.pending_exports,
                self.evaluator,
            )
        )
        return SyncContext(
            activity=activity,
            connected_system=connected_system,
            configuration=configuration,
            repositories=repositories,
            matcher=matcher,
            export_evaluator=export_evaluator,
            evaluator=self.evaluator,
            import_mapping_cache=build_import_mapping_cache(configuration.sync_rules),
            savepoint=uow.savepoint,
            change_tracking=self.change_tracking,
        )

    def _process(
        self,
        context: SyncContext,
        uow: SyncUnitOfWork,
        token: CancellationToken,
    ) -> None:
        activity = context.activity
        repositories = context.repositories
        system_id = context.connected_system_id

        modified_since: datetime | None = None
        if activity.run_type is SyncRunType.DELTA_SYNC:
            modified_since = repositories.sync_state.get_watermark(system_id)
        activity.objects_to_process = repositories.connected_system_objects.count(
            system_id,
            modified_since=modified_since,
        )
        repositories.activities.update(activity)
        uow.commit()
        log.info(
            "Starting %s of connected system %s: %s objects (modified since %s)",
            activity.run_type,
            system_id,
            activity.objects_to_process,
            modified_since,
        )

        page_number = 0
        if activity.objects_to_process:
            page_number = self._process_pages(context, uow, token, modified_since=modified_since)
        else:
            log.info("No objects to process for connected system %s", system_id)

        if token.cancelled:
            log.info("Run %s cancelled after %s pages", activity.id, page_number)
            return

        if context.unresolved_reference_ids:
            self._resolve_cross_page_references(context, uow, page_number)

        self._transition(RunState.WATERMARK_UPDATE, activity)
        repositories.sync_state.set_watermark(system_id, activity.started_at)
        uow.commit()

    def _process_pages(
        self,
        context: SyncContext,
        uow: SyncUnitOfWork,
        token: CancellationToken,
        *,
        modified_since: datetime | None,
    ) -> int:
        repositories = context.repositories
        after_id: UUID | None = None
        page_number = 0
        while not token.cancelled:
            page = repositories.connected_system_objects.page(
                context.connected_system_id,
                after_id=after_id,
                limit=self.page_size,
                modified_since=modified_since,
            )
            if not page:
                break
            page_number += 1
            self._transition(RunState.PROCESSING_PAGE, context.activity, page_number)

            batch = PageBatch(page_number=page_number)
            processed = self._process_page(page, batch, context, token)
            context.activity.objects_processed += processed
            flush_page(batch, context)
            uow.commit()

            after_id = page[-1].id
            if len(page) < self.page_size:
                break
        return page_number

    def _process_page(
        self,
        page: Sequence[ConnectedSystemObject],
        batch: PageBatch,
        context: SyncContext,
        token: CancellationToken,
    ) -> int:
        for connected_system_object in page:
            batch.connected_system_objects[connected_system_object.id] = connected_system_object

        torn_down: list[ConnectedSystemObject] = []
        for connected_system_object in page:
            if token.cancelled:
                break
            torn_down.append(connected_system_object)
            _guarded(
                connected_system_object,
                partial(teardown_object, connected_system_object, batch=batch, context=context),
                batch=batch,
                context=context,
            )

        # obsolete and provisioning objects are finished once torn down
        processed = 0
        for connected_system_object in torn_down:
            finished = connected_system_object.is_obsolete or (
                connected_system_object.status is ConnectedSystemObjectStatus.PENDING_PROVISIONING
            )
            if not finished and token.cancelled:
                continue
            processed += 1
            if finished:
                continue
            _guarded(
                connected_system_object,
                partial(reconcile_object, connected_system_object, batch=batch, context=context),
                batch=batch,
                context=context,
            )
        if processed < len(page):
            log.info(
                "Cancellation requested; page %s stopped after %s of %s objects",
                batch.page_number,
                processed,
                len(page),
            )

        for deferred in batch.deferred_reference_flows:
            _guarded(
                deferred.connected_system_object,
                partial(flow_deferred_reference, deferred, batch=batch, context=context),
                batch=batch,
                context=context,
            )
        return processed

    def _resolve_cross_page_references(
        self,
        context: SyncContext,
        uow: SyncUnitOfWork,
        page_number: int,
    ) -> None:
        self._transition(RunState.RESOLVING_CROSS_PAGE_REFERENCES, context.activity)
        pending = list(context.unresolved_reference_ids)
        context.unresolved_reference_ids.clear()
        log.info("Resolving references of %s objects across pages", len(pending))

        for number, chunk in enumerate(batched(pending, self.page_size), start=page_number + 1):
            batch = PageBatch(page_number=number)
            objects = context.repositories.connected_system_objects.get_many(chunk)
            for connected_system_object in objects:
                _guarded(
                    connected_system_object,
                    partial(
                        resolve_cross_page_references,
                        [connected_system_object],
                        batch=batch,
                        context=context,
                    ),
                    batch=batch,
                    context=context,
                )
            flush_page(batch, context)
            uow.commit()

    def _finish(
        self,
        activity: Activity,
        repositories: SyncRepositories,
        *,
        status: ActivityStatus,
        items: Sequence[RunProfileExecutionItem],
        error_message: str | None = None,
    ) -> None:
        activity.status = status
        activity.error_message = error_message
        activity.completed_at = utc_now()
        activity.summary = summarize(items)
        repositories.activities.update(activity)
        match status:
            case ActivityStatus.CANCELLED:
                self._transition(RunState.CANCELLED, activity)
            case ActivityStatus.FAILED:
                self._transition(RunState.FAILED, activity)
            case _:
                self._transition(RunState.COMPLETE, activity)
        log.info(
            "Finished run %s with status %s: %s items, %s errors",
            activity.id,
            status,
            activity.summary.total,
            activity.summary.errors,
        )

    def _transition(
        self,
        state: RunState,
        activity: Activity,
        page_number: int | None = None,
    ) -> None:
        self.state = state
        if page_number is None:
            log.debug("Run %s: %s", activity.id, state)
        else:
            log.debug("Run %s: %s %s", activity.id, state, page_number)


def _guarded(
    connected_system_object: ConnectedSystemObject,
    action: Callable[[], object],
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    """Run one per-object step, recording unexpected errors on the object's item."""

    try:
        action()
    except SyncConfigurationError:
        raise
    except Exception as exc:
        log.exception("Unhandled error while processing %s", connected_system_object)
        item = batch.item_for(connected_system_object.id)
        if item is None:
            item = batch.add_item(
                context.prepare_item(connected_system_object, ObjectChangeType.NO_CHANGE)
            )
        item.record_error(
            ExecutionErrorType.UNHANDLED_ERROR,
            str(exc) or type(exc).__name__,
            stack_trace=traceback.format_exc(),
        )


def _raise_for_invalid_rules(configuration: SyncConfiguration) -> None:
    problems = [
        f"rule {rule_id}: {issue.message}"
        for rule_id, issues in configuration.validate().items()
        for issue in issues
        if issue.severity is ValidationSeverity.ERROR
    ]
    if problems:
        raise SyncConfigurationError("Invalid sync rules: " + "; ".join(problems))
