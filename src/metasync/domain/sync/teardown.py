"""Teardown stage (pass 1 of a page).

Responsibilities of this stage:
- confirm previously exported changes against the CSO's imported values
- tear down obsolete CSOs: disconnect them from their MVO, strip the values
  their system contributed when the object type asks for it, apply the MVO
  type's deletion rule and queue the CSO for deletion

Running teardown for the whole page before any join makes every disconnect
visible to the join resolver of pass 2.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metasync.domain.model import (
    InboundOutOfScopeAction,
    JoinType,
    MetaverseChangeType,
    ObjectChangeType,
    utc_now,
)

from .contracts import DeletionDecision
from .deletion import evaluate_deletion_rule
from .pending_exports import confirm_pending_exports
from .scoping import obsolete_object_action

if TYPE_CHECKING:
    from metasync.domain.model import (
        AttributeValue,
        ConnectedSystemObject,
        MetaverseObject,
        RunProfileExecutionItem,
    )

    from .batch import PageBatch, SyncContext


log = logging.getLogger(__name__)


def confirm_exports(
    connected_system_object: ConnectedSystemObject,
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    pending_exports = context.repositories.pending_exports.for_connected_system_object(
        connected_system_object.id
    )
    if not pending_exports:
        return
    result = confirm_pending_exports(connected_system_object, pending_exports)
    batch.pending_exports_to_delete.extend(result.to_delete)
    batch.pending_exports_to_update.extend(result.to_update)


def teardown_object(
    connected_system_object: ConnectedSystemObject,
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    """Run pass 1 for one CSO of the page."""

    confirm_exports(connected_system_object, batch=batch, context=context)
    if not connected_system_object.is_obsolete:
        return

    deleted_item = context.prepare_item(connected_system_object, ObjectChangeType.DELETED)

    if not connected_system_object.is_joined:
        if connected_system_object.join_type is JoinType.NOT_JOINED:
            # disconnected earlier, e.g. by an MVO deletion; nothing left to record
            log.debug("Deleting already disconnected %s quietly", connected_system_object)
            batch.quiet_deletes.append(connected_system_object)
            return
        batch.obsolete_objects_to_delete.append((connected_system_object, deleted_item))
        return

    rules = context.import_rules_for(connected_system_object.type_id)
    action = obsolete_object_action(connected_system_object, rules)
    if action is InboundOutOfScopeAction.REMAIN_JOINED:
        log.info(
            "Deleting obsolete %s without disconnecting it (remain joined)",
            connected_system_object,
        )
        batch.obsolete_objects_to_delete.append((connected_system_object, deleted_item))
        return

    metaverse_object = context.load_metaverse_object(connected_system_object, batch)
    if metaverse_object is None:
        log.warning(
            "%s points at a missing metaverse object %s",
            connected_system_object,
            connected_system_object.metaverse_object_id,
        )
        batch.obsolete_objects_to_delete.append((connected_system_object, deleted_item))
        return

    disconnected_item = batch.add_item(
        context.prepare_item(connected_system_object, ObjectChangeType.DISCONNECTED)
    )
    disconnect_from_metaverse(
        connected_system_object,
        metaverse_object,
        batch=batch,
        context=context,
        execution_item=disconnected_item,
        change_type=MetaverseChangeType.DISCONNECTED,
    )
    batch.obsolete_objects_to_delete.append((connected_system_object, deleted_item))


def disconnect_from_metaverse(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    *,
    batch: PageBatch,
    context: SyncContext,
    execution_item: RunProfileExecutionItem,
    change_type: MetaverseChangeType,
) -> None:
    """Break the join between a CSO and its MVO, then apply the deletion rule."""

    remaining = 0
    if metaverse_object.id is not None:
        remaining = max(
            0,
            context.repositories.connected_system_objects.count_joined(metaverse_object.id) - 1,
        )

    object_type = context.object_type(connected_system_object.type_id)
    removals: list[AttributeValue] = []
    if object_type.remove_contributed_attributes_on_obsoletion:
        removals = [
            value
            for value in metaverse_object.attribute_values
            if value.contributed_by_system_id == context.connected_system_id
        ]
        metaverse_object.pending_attribute_value_removals.extend(removals)
        _additions, removals = metaverse_object.apply_pending_changes()
        execution_item.attribute_flow_count = len(removals)
        batch.request_export_evaluation(
            metaverse_object,
            additions=(),
            removals=removals,
            source_system_id=context.connected_system_id,
        )

    connected_system_object.disconnect()
    if metaverse_object.id is not None:
        batch.pending_disconnected_mvo_ids.append(metaverse_object.id)
    batch.metaverse_objects_by_cso_id.pop(connected_system_object.id, None)
    batch.queue_metaverse_update(metaverse_object)
    batch.record_metaverse_change(
        metaverse_object,
        change_type,
        removals=removals,
        execution_item=execution_item,
    )
    log.info("Disconnected %s from %s", connected_system_object, metaverse_object)

    apply_deletion_rule(
        metaverse_object,
        batch=batch,
        context=context,
        remaining_join_count=remaining,
    )


def apply_deletion_rule(
    metaverse_object: MetaverseObject,
    *,
    batch: PageBatch,
    context: SyncContext,
    remaining_join_count: int,
) -> DeletionDecision:
    decision = evaluate_deletion_rule(
        metaverse_object,
        object_type=context.metaverse_object_type(metaverse_object.type),
        disconnecting_system_id=context.connected_system_id,
        remaining_join_count=remaining_join_count,
    )
    match decision:
        case DeletionDecision.DELETE_NOW:
            log.info("Queueing %s for deletion", metaverse_object)
            batch.queue_metaverse_deletion(metaverse_object)
        case DeletionDecision.MARK_FOR_DELETION:
            activity = context.activity
            metaverse_object.mark_disconnected(
                at=utc_now(),
                initiated_by_type=activity.initiated_by_type,
                initiated_by_id=activity.initiated_by_id,
                initiated_by_name=activity.initiated_by_name,
            )
            batch.queue_metaverse_update(metaverse_object)
        case DeletionDecision.NOT_ELIGIBLE | DeletionDecision.PROTECTED:
            log.debug("%s stays after disconnect (%s)", metaverse_object, decision)
    return decision
