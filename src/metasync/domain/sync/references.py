"""Reference attribute flow.

Responsibilities of this stage:
- flow reference attributes once every CSO of the page is joined or projected,
  so references between objects of the same page resolve
- remember CSOs whose references still point at unjoined objects
- retry those CSOs after the last page and record the ones that never resolve
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metasync.domain.model import (
    ExecutionErrorType,
    MetaverseChangeType,
    ObjectChangeType,
)

from .attribute_flow import FlowResult, flow_import_rule
from .scoping import in_scope_import_rules

if TYPE_CHECKING:
    from collections.abc import Sequence

    from metasync.domain.model import (
        AttributeValue,
        ConnectedSystemObject,
        MetaverseObject,
        RunProfileExecutionItem,
        SyncRule,
    )

    from .batch import DeferredReferenceFlow, PageBatch, SyncContext


log = logging.getLogger(__name__)


def flow_deferred_references(batch: PageBatch, context: SyncContext) -> None:
    """Flow the reference attributes deferred by the reconcile stage of ``batch``."""

    for deferred in batch.deferred_reference_flows:
        flow_deferred_reference(deferred, batch=batch, context=context)


def flow_deferred_reference(
    deferred: DeferredReferenceFlow,
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    result = flow_references(
        deferred.connected_system_object,
        deferred.metaverse_object,
        deferred.rules,
        batch=batch,
        context=context,
        execution_item=deferred.execution_item,
    )
    if result.unresolved_references:
        log.debug(
            "%s has unresolved references; retrying after the last page",
            deferred.connected_system_object,
        )
        context.record_unresolved_references(deferred.connected_system_object.id)


def flow_references(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    rules: Sequence[SyncRule],
    *,
    batch: PageBatch,
    context: SyncContext,
    execution_item: RunProfileExecutionItem | None = None,
) -> FlowResult:
    flow_context = context.flow_context(connected_system_object, metaverse_object, batch)
    result = FlowResult()
    for rule in rules:
        result.add(
            flow_import_rule(
                connected_system_object,
                metaverse_object,
                rule,
                context=flow_context,
                reference_pass=True,
            )
        )
    if not result.has_changes:
        return result

    additions, removals = metaverse_object.apply_pending_changes()
    if execution_item is None:
        execution_item = batch.add_item(
            context.prepare_item(connected_system_object, ObjectChangeType.ATTRIBUTE_FLOW)
        )
    execution_item.attribute_flow_count = (
        (execution_item.attribute_flow_count or 0) + result.additions + result.removals
    )
    _record_change(metaverse_object, additions, removals, execution_item, batch=batch)
    batch.queue_metaverse_update(metaverse_object)
    batch.request_export_evaluation(
        metaverse_object,
        additions=additions,
        removals=removals,
        source_system_id=context.connected_system_id,
    )
    return result


def resolve_cross_page_references(
    connected_system_objects: Sequence[ConnectedSystemObject],
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    """Retry reference flow for CSOs left unresolved by earlier pages.

    References that still do not resolve are recorded as errors.
    """

    for connected_system_object in connected_system_objects:
        batch.connected_system_objects[connected_system_object.id] = connected_system_object
        metaverse_object = context.load_metaverse_object(connected_system_object, batch)
        if metaverse_object is None:
            log.debug("%s is no longer joined; skipping reference retry", connected_system_object)
            continue
        rules = [
            rule
            for rule in in_scope_import_rules(
                connected_system_object,
                context.import_rules_for(connected_system_object.type_id),
            )
            if rule.metaverse_object_type == metaverse_object.type
        ]
        result = flow_references(
            connected_system_object,
            metaverse_object,
            rules,
            batch=batch,
            context=context,
        )
        if not result.unresolved_references:
            continue

        log.warning("%s references objects that are not in the metaverse", connected_system_object)
        item = batch.item_for(connected_system_object.id)
        if item is None:
            item = batch.add_item(
                context.prepare_item(connected_system_object, ObjectChangeType.NO_CHANGE)
            )
        item.record_error(
            ExecutionErrorType.UNRESOLVED_REFERENCE,
            f"{connected_system_object} references objects that could not be resolved",
        )


def _record_change(
    metaverse_object: MetaverseObject,
    additions: list[AttributeValue],
    removals: list[AttributeValue],
    execution_item: RunProfileExecutionItem,
    *,
    batch: PageBatch,
) -> None:
    for change in batch.metaverse_changes:
        if change.execution_item is execution_item and change.metaverse_object is metaverse_object:
            change.additions.extend(additions)
            change.removals.extend(removals)
            return
    batch.record_metaverse_change(
        metaverse_object,
        MetaverseChangeType.ATTRIBUTE_FLOW,
        additions=additions,
        removals=removals,
        execution_item=execution_item,
    )
