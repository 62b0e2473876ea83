"""Flush stage: submit one page's deferred writes to the repositories.

Responsibilities of this stage, in order:
- create projected MVOs, bind in-page references, update changed MVOs
- point projected CSOs at the ids their MVOs received
- record MVO change history (when change tracking is enabled)
- evaluate export rules for MVOs whose attributes changed or left scope
- persist provisioning CSOs and pending export creates, deletes and updates
- update CSOs, then delete obsolete CSOs with their pending exports
- delete MVOs whose deletion rule fired, each in its own savepoint, falling
  back to a deletion marker when the delete fails
- append the page's execution items and progress to the activity

The unit of work is committed by the caller.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metasync.domain.model import (
    MetaverseChangeType,
    MetaverseObjectChange,
    MetaverseObjectChangeAttributeValue,
    ValueChangeType,
    utc_now,
)
from metasync.domain.ports import ExportEvaluationResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID

    from metasync.domain.model import (
        AttributeValue,
        MetaverseObject,
        RunProfileExecutionItem,
    )

    from .batch import PageBatch, PendingMetaverseChange, SyncContext


log = logging.getLogger(__name__)


def flush_page(batch: PageBatch, context: SyncContext) -> None:
    repositories = context.repositories

    _flush_metaverse_objects(batch, context)
    if context.change_tracking and batch.metaverse_changes:
        repositories.activities.add_metaverse_object_changes(
            [_build_change(pending, context) for pending in batch.metaverse_changes]
        )
    _evaluate_exports(batch, context)
    _flush_pending_exports(batch, context)
    _flush_connected_system_objects(batch, context)
    _delete_metaverse_objects(batch, context)

    if batch.execution_items:
        repositories.activities.add_execution_items(batch.execution_items)
        context.execution_items.extend(batch.execution_items)
    repositories.activities.update(context.activity)
    log.debug(
        "Flushed page %s: %s created, %s updated, %s deleted MVOs; %s items",
        batch.page_number,
        len(batch.metaverse_objects_to_create),
        len(batch.metaverse_objects_to_update),
        len(batch.metaverse_objects_to_delete),
        len(batch.execution_items),
    )


def _flush_metaverse_objects(batch: PageBatch, context: SyncContext) -> None:
    repository = context.repositories.metaverse_objects
    if batch.metaverse_objects_to_create:
        repository.add_many(batch.metaverse_objects_to_create)

    changed = [*batch.metaverse_objects_to_create, *batch.metaverse_objects_to_update]
    for metaverse_object in changed:
        metaverse_object.bind_references()
    if changed:
        repository.update_many(changed)

    for connected_system_object, metaverse_object in batch.projected_objects:
        connected_system_object.metaverse_object_id = metaverse_object.id
        batch.queue_connected_system_object_update(connected_system_object)


def _build_change(pending: PendingMetaverseChange, context: SyncContext) -> MetaverseObjectChange:
    activity = context.activity
    attribute_changes = [
        *_attribute_changes(pending.additions, ValueChangeType.ADD),
        *_attribute_changes(pending.removals, ValueChangeType.REMOVE),
    ]
    return MetaverseObjectChange(
        metaverse_object_id=pending.metaverse_object.id,
        change_type=pending.change_type,
        initiated_by_type=activity.initiated_by_type,
        initiated_by_id=activity.initiated_by_id,
        initiated_by_name=activity.initiated_by_name,
        execution_item_id=_item_id(pending.execution_item),
        attribute_changes=attribute_changes,
    )


def _attribute_changes(
    values: Iterable[AttributeValue],
    change_type: ValueChangeType,
) -> list[MetaverseObjectChangeAttributeValue]:
    changes: list[MetaverseObjectChangeAttributeValue] = []
    for value in values:
        raw = value.value
        if value.reference is not None:
            raw = value.reference.id
        changes.append(
            MetaverseObjectChangeAttributeValue(
                attribute=value.attribute,
                value_change_type=change_type,
                data_type=value.data_type,
                value=raw,
            )
        )
    return changes


def _item_id(item: RunProfileExecutionItem | None) -> UUID | None:
    return None if item is None else item.id


def _evaluate_exports(batch: PageBatch, context: SyncContext) -> None:
    evaluator = context.export_evaluator
    result = ExportEvaluationResult()
    for request in batch.export_requests:
        if _contains(batch.metaverse_objects_to_delete, request.metaverse_object):
            continue
        result.merge(
            evaluator.evaluate_export_rules(
                request.metaverse_object,
                request.additions,
                source_system_id=request.source_system_id,
                removed_attributes=request.removals,
            )
        )
    for metaverse_object, source_system_id in batch.out_of_scope_export_requests:
        if _contains(batch.metaverse_objects_to_delete, metaverse_object):
            continue
        result.merge(
            evaluator.evaluate_out_of_scope_exports(
                metaverse_object,
                source_system_id=source_system_id,
            )
        )
    if result.no_net_change_count:
        log.debug("%s export mappings had no net change", result.no_net_change_count)

    batch.pending_exports_to_create.extend(result.pending_exports_to_create)
    for pending_export in result.pending_exports_to_update:
        if not _contains(batch.pending_exports_to_update, pending_export):
            batch.pending_exports_to_update.append(pending_export)
    batch.provisioning_objects.extend(result.provisioning_objects)
    for connected_system_object in result.disconnected_objects:
        batch.queue_connected_system_object_update(connected_system_object)


def _flush_pending_exports(batch: PageBatch, context: SyncContext) -> None:
    repositories = context.repositories
    if batch.provisioning_objects:
        repositories.connected_system_objects.add_many(batch.provisioning_objects)
    if batch.pending_exports_to_create:
        repositories.pending_exports.add_many(batch.pending_exports_to_create)
    if batch.pending_exports_to_delete:
        repositories.pending_exports.delete_many(batch.pending_exports_to_delete)
    to_update = [
        pending_export
        for pending_export in batch.pending_exports_to_update
        if not _contains(batch.pending_exports_to_delete, pending_export)
    ]
    if to_update:
        repositories.pending_exports.update_many(to_update)


def _flush_connected_system_objects(batch: PageBatch, context: SyncContext) -> None:
    repositories = context.repositories
    deleted = [
        *batch.quiet_deletes,
        *(obsolete for obsolete, _item in batch.obsolete_objects_to_delete),
    ]
    to_update = [
        connected_system_object
        for connected_system_object in batch.connected_system_objects_to_update
        if not _contains(deleted, connected_system_object)
    ]
    if to_update:
        repositories.connected_system_objects.update_many(to_update)

    if deleted:
        for connected_system_object in deleted:
            exports = repositories.pending_exports.for_connected_system_object(
                connected_system_object.id
            )
            if exports:
                repositories.pending_exports.delete_many(exports)
        repositories.connected_system_objects.delete_many(deleted)
    for _connected_system_object, item in batch.obsolete_objects_to_delete:
        batch.add_item(item)

    batch.pending_disconnected_mvo_ids.clear()
    batch.joined_mvo_ids.clear()


def _delete_metaverse_objects(batch: PageBatch, context: SyncContext) -> None:
    for metaverse_object in batch.metaverse_objects_to_delete:
        try:
            with context.savepoint():
                _delete_metaverse_object(metaverse_object, context)
        except Exception:
            log.exception("Could not delete %s; marking it for deferred deletion", metaverse_object)
            activity = context.activity
            metaverse_object.mark_disconnected(
                at=utc_now(),
                initiated_by_type=activity.initiated_by_type,
                initiated_by_id=activity.initiated_by_id,
                initiated_by_name=activity.initiated_by_name,
            )
            context.repositories.metaverse_objects.update_many([metaverse_object])


def _delete_metaverse_object(metaverse_object: MetaverseObject, context: SyncContext) -> None:
    repositories = context.repositories
    result = context.export_evaluator.evaluate_mvo_deletion(metaverse_object)
    if result.pending_exports_to_create:
        repositories.pending_exports.add_many(result.pending_exports_to_create)
    if result.disconnected_objects:
        repositories.connected_system_objects.update_many(result.disconnected_objects)
    if context.change_tracking:
        repositories.activities.add_metaverse_object_changes(
            [_deletion_change(metaverse_object, context)]
        )
    repositories.metaverse_objects.delete(metaverse_object)
    log.info("Deleted %s", metaverse_object)


def _deletion_change(
    metaverse_object: MetaverseObject,
    context: SyncContext,
) -> MetaverseObjectChange:
    activity = context.activity
    return MetaverseObjectChange(
        metaverse_object_id=metaverse_object.id,
        change_type=MetaverseChangeType.DELETED,
        initiated_by_type=activity.initiated_by_type,
        initiated_by_id=activity.initiated_by_id,
        initiated_by_name=activity.initiated_by_name,
    )


def _contains[T](items: Sequence[T], candidate: T) -> bool:
    return any(item is candidate for item in items)

