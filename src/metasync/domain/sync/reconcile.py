"""Reconcile stage (pass 2 of a page).

Responsibilities of this stage:
- route CSOs that left the scope of every scoped import rule to the
  out-of-scope handling (disconnect or remain joined)
- join unjoined CSOs, or project a new MVO when nothing matches
- flow non-reference attributes onto the MVO and apply them
- defer reference attributes until the whole page is joined
- queue audit entries, MVO writes and export evaluation
- detect drift on CSOs joined to a persisted MVO

Out of scope for this stage:
- reference attribute flow (``references``)
- storage writes (``flush``)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metasync.domain.model import (
    ExecutionErrorType,
    InboundOutOfScopeAction,
    MetaverseChangeType,
    ObjectChangeType,
    utc_now,
)

from .attribute_flow import FlowResult, flow_import_rule, is_reference_flow
from .batch import DeferredReferenceFlow
from .contracts import AlreadyJoined, AmbiguousMatch, Joined, NoMatch
from .drift import evaluate_drift
from .join import attempt_join, attempt_projection
from .scoping import in_scope_import_rules, is_out_of_scope, out_of_scope_action
from .teardown import disconnect_from_metaverse

if TYPE_CHECKING:
    from collections.abc import Sequence

    from metasync.domain.model import (
        ConnectedSystemObject,
        MetaverseObject,
        RunProfileExecutionItem,
        SyncRule,
    )

    from .batch import PageBatch, SyncContext


log = logging.getLogger(__name__)

_METAVERSE_CHANGE_TYPES: dict[ObjectChangeType, MetaverseChangeType] = {
    ObjectChangeType.PROJECTED: MetaverseChangeType.PROJECTED,
    ObjectChangeType.JOINED: MetaverseChangeType.JOINED,
    ObjectChangeType.ATTRIBUTE_FLOW: MetaverseChangeType.ATTRIBUTE_FLOW,
}


def reconcile_object(
    connected_system_object: ConnectedSystemObject,
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    """Run pass 2 for one non-obsolete CSO of the page."""

    rules = context.import_rules_for(connected_system_object.type_id)
    in_scope = in_scope_import_rules(connected_system_object, rules)
    if is_out_of_scope(rules, in_scope):
        handle_out_of_scope(connected_system_object, rules, batch=batch, context=context)
        return

    change_type: ObjectChangeType | None = None
    metaverse_object: MetaverseObject | None = None
    if connected_system_object.is_joined:
        metaverse_object = context.load_metaverse_object(connected_system_object, batch)
        if metaverse_object is None:
            log.warning(
                "%s points at a missing metaverse object %s; joining again",
                connected_system_object,
                connected_system_object.metaverse_object_id,
            )
            connected_system_object.disconnect()

    if metaverse_object is None:
        join_rules = in_scope or rules
        outcome = attempt_join(
            connected_system_object,
            join_rules,
            matcher=context.matcher,
            connected_system_objects=context.repositories.connected_system_objects,
            joined_at=utc_now(),
            pending_disconnected_mvo_ids=batch.pending_disconnected_mvo_ids,
            joined_in_page=batch.joined_mvo_ids,
        )
        match outcome:
            case Joined(metaverse_object=joined):
                metaverse_object = joined
                change_type = ObjectChangeType.JOINED
                if joined.id is not None:
                    batch.joined_mvo_ids.append(joined.id)
                if batch.cancel_metaverse_deletion(joined):
                    log.info("%s rejoined %s; deletion cancelled", connected_system_object, joined)
                    batch.queue_metaverse_update(joined)
                batch.queue_connected_system_object_update(connected_system_object)
            case AmbiguousMatch(message=message):
                _record_join_error(
                    connected_system_object,
                    ExecutionErrorType.AMBIGUOUS_MATCH,
                    message,
                    batch=batch,
                    context=context,
                )
                return
            case AlreadyJoined(message=message):
                _record_join_error(
                    connected_system_object,
                    ExecutionErrorType.COULD_NOT_JOIN_DUE_TO_EXISTING_JOIN,
                    message,
                    batch=batch,
                    context=context,
                )
                return
            case NoMatch():
                metaverse_object = attempt_projection(
                    connected_system_object,
                    join_rules,
                    joined_at=utc_now(),
                )
                if metaverse_object is None:
                    log.debug("%s neither joined nor projected", connected_system_object)
                    return
                change_type = ObjectChangeType.PROJECTED
                batch.metaverse_objects_to_create.append(metaverse_object)
                batch.projected_objects.append((connected_system_object, metaverse_object))

    batch.metaverse_objects_by_cso_id[connected_system_object.id] = metaverse_object
    flow_rules = [rule for rule in in_scope if rule.metaverse_object_type == metaverse_object.type]
    _flow_and_record(
        connected_system_object,
        metaverse_object,
        flow_rules,
        change_type=change_type,
        batch=batch,
        context=context,
    )

    if metaverse_object.id is not None and change_type is not ObjectChangeType.PROJECTED:
        _detect_drift(connected_system_object, metaverse_object, batch=batch, context=context)


def _flow_and_record(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    rules: Sequence[SyncRule],
    *,
    change_type: ObjectChangeType | None,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    flow_context = context.flow_context(connected_system_object, metaverse_object, batch)
    result = FlowResult()
    reference_rules: list[SyncRule] = []
    for rule in rules:
        result.add(
            flow_import_rule(
                connected_system_object,
                metaverse_object,
                rule,
                context=flow_context,
                reference_pass=False,
            )
        )
        if any(
            is_reference_flow(flow_rule, flow_context.target_type)
            for flow_rule in rule.attribute_flow_rules
        ):
            reference_rules.append(rule)

    item: RunProfileExecutionItem | None = None
    if change_type is not None or result.has_changes:
        item = batch.add_item(
            context.prepare_item(
                connected_system_object,
                change_type or ObjectChangeType.ATTRIBUTE_FLOW,
            )
        )
        item.attribute_flow_count = result.additions + result.removals

    additions, removals = metaverse_object.apply_pending_changes()
    if item is not None:
        batch.record_metaverse_change(
            metaverse_object,
            _METAVERSE_CHANGE_TYPES[item.object_change_type],
            additions=additions,
            removals=removals,
            execution_item=item,
        )
    if metaverse_object.id is not None and (change_type is not None or additions or removals):
        batch.queue_metaverse_update(metaverse_object)
    batch.request_export_evaluation(
        metaverse_object,
        additions=additions,
        removals=removals,
        source_system_id=context.connected_system_id,
    )

    if reference_rules:
        batch.deferred_reference_flows.append(
            DeferredReferenceFlow(
                connected_system_object=connected_system_object,
                metaverse_object=metaverse_object,
                rules=reference_rules,
                execution_item=item,
            )
        )


def handle_out_of_scope(
    connected_system_object: ConnectedSystemObject,
    rules: Sequence[SyncRule],
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    """Apply the inbound out-of-scope action to a CSO no scoped rule covers."""

    if not connected_system_object.is_joined:
        log.debug("%s is out of scope and not joined", connected_system_object)
        return

    if out_of_scope_action(rules) is InboundOutOfScopeAction.REMAIN_JOINED:
        log.info("%s is out of scope but remains joined", connected_system_object)
        batch.add_item(
            context.prepare_item(connected_system_object, ObjectChangeType.OUT_OF_SCOPE_RETAIN_JOIN)
        )
        return

    metaverse_object = context.load_metaverse_object(connected_system_object, batch)
    if metaverse_object is None:
        connected_system_object.disconnect()
        batch.queue_connected_system_object_update(connected_system_object)
        return

    item = batch.add_item(
        context.prepare_item(connected_system_object, ObjectChangeType.DISCONNECTED_OUT_OF_SCOPE)
    )
    disconnect_from_metaverse(
        connected_system_object,
        metaverse_object,
        batch=batch,
        context=context,
        execution_item=item,
        change_type=MetaverseChangeType.DISCONNECTED_OUT_OF_SCOPE,
    )
    batch.queue_connected_system_object_update(connected_system_object)
    batch.out_of_scope_export_requests.append((metaverse_object, context.connected_system_id))


def _record_join_error(
    connected_system_object: ConnectedSystemObject,
    error_type: ExecutionErrorType,
    message: str,
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    log.warning("Could not join %s: %s", connected_system_object, message)
    item = batch.add_item(context.prepare_item(connected_system_object, ObjectChangeType.NO_CHANGE))
    item.record_error(error_type, message)


def _detect_drift(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    *,
    batch: PageBatch,
    context: SyncContext,
) -> None:
    result = evaluate_drift(
        connected_system_object,
        metaverse_object,
        export_rules=context.export_rules,
        import_mapping_cache=context.import_mapping_cache,
        object_type=context.object_type(connected_system_object.type_id),
        evaluator=context.evaluator,
        resolve_reference=context.export_reference_resolver(
            connected_system_object.connected_system_id
        ),
        existing_exports=context.repositories.pending_exports.for_connected_system_object(
            connected_system_object.id
        ),
    )
    if not result.has_drift:
        return
    batch.pending_exports_to_create.extend(result.corrective_exports)
    item = batch.add_item(
        context.prepare_item(connected_system_object, ObjectChangeType.DRIFT_CORRECTION)
    )
    item.attribute_flow_count = len(result.drifted_attributes)
