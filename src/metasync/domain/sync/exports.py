"""Default export evaluator: turns MVO changes into pending exports.

Responsibilities of this stage:
- stage ``UPDATE`` exports for CSOs joined to a changed MVO in other systems,
  carrying only changes that differ from the CSO's current values
- provision a ``PENDING_PROVISIONING`` CSO plus a ``CREATE`` export where a
  provisioning rule has no CSO yet
- deprovision CSOs of export rules whose scope the MVO left
- stage ``DELETE`` exports for provisioned CSOs when an MVO is deleted

Nothing is persisted here; results go back to the page batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from metasync.domain.model import (
    ConnectedSystemObject,
    ConnectedSystemObjectStatus,
    JoinType,
    OutboundDeprovisionAction,
    PendingExport,
    PendingExportChangeType,
    PendingExportStatus,
    utc_now,
)
from metasync.domain.ports import ExportEvaluationResult

from .attribute_flow import diff_values, export_changes, export_source_attributes, export_values
from .expressions import FormulaEvaluator
from .scoping import is_in_scope

if TYPE_CHECKING:
    from collections.abc import Collection, Sequence
    from uuid import UUID

    from metasync.domain.model import (
        AttributeFlowRule,
        AttributeValue,
        MetaverseObject,
        PendingExportAttributeValueChange,
        SyncConfiguration,
        SyncRule,
    )
    from metasync.domain.ports import ConnectedSystemObjectRepository, PendingExportRepository

    from .attribute_flow import ExportReferenceResolver
    from .expressions import ExpressionEvaluator


log = logging.getLogger(__name__)


@dataclass(slots=True)
class RuleBasedExportEvaluator:
    """Evaluate the enabled export rules of the configuration."""

    configuration: SyncConfiguration
    connected_system_objects: ConnectedSystemObjectRepository
    pending_exports: PendingExportRepository
    evaluator: ExpressionEvaluator = field(default_factory=FormulaEvaluator)

    def evaluate_export_rules(
        self,
        metaverse_object: MetaverseObject,
        changed_attributes: Sequence[AttributeValue],
        *,
        source_system_id: int,
        removed_attributes: Collection[AttributeValue] = (),
    ) -> ExportEvaluationResult:
        metaverse_object_id = _require_id(metaverse_object)
        result = ExportEvaluationResult()
        changed_names = {value.attribute for value in changed_attributes}
        changed_names |= {value.attribute for value in removed_attributes}
        joined = self.connected_system_objects.for_metaverse_object(metaverse_object_id)

        for rule in self.configuration.export_rules(metaverse_object_type=metaverse_object.type):
            if rule.connected_system_id == source_system_id:
                continue
            groups = rule.object_scoping_criteria_groups
            if not is_in_scope(metaverse_object.attribute_values, groups):
                continue
            connected_system_object = _joined_object(joined, rule)

            if connected_system_object is None:
                if rule.provision_to_connected_system:
                    self._provision(metaverse_object, metaverse_object_id, rule, result)
                continue

            flow_rules = [
                flow_rule
                for flow_rule in rule.attribute_flow_rules
                if export_source_attributes(flow_rule) & changed_names
            ]
            if not flow_rules:
                continue
            changes, unchanged = self._changes_for(
                connected_system_object,
                metaverse_object,
                rule,
                flow_rules,
            )
            result.no_net_change_count += unchanged
            if changes:
                self._stage_update(connected_system_object, metaverse_object_id, changes, result)
        return result

    def evaluate_out_of_scope_exports(
        self,
        metaverse_object: MetaverseObject,
        *,
        source_system_id: int,
    ) -> ExportEvaluationResult:
        result = ExportEvaluationResult()
        if metaverse_object.id is None:
            return result
        joined = self.connected_system_objects.for_metaverse_object(metaverse_object.id)

        for rule in self.configuration.export_rules(metaverse_object_type=metaverse_object.type):
            if rule.connected_system_id == source_system_id or not rule.has_scoping_criteria:
                continue
            if is_in_scope(metaverse_object.attribute_values, rule.object_scoping_criteria_groups):
                continue
            connected_system_object = _joined_object(joined, rule)
            if connected_system_object is None:
                continue
            log.info(
                "%s left the scope of export rule %s; deprovisioning %s",
                metaverse_object,
                rule.name,
                connected_system_object,
            )
            if rule.outbound_deprovision_action is OutboundDeprovisionAction.DELETE:
                result.pending_exports_to_create.append(
                    _delete_export(connected_system_object, metaverse_object.id)
                )
            connected_system_object.disconnect()
            result.disconnected_objects.append(connected_system_object)
        return result

    def evaluate_mvo_deletion(self, metaverse_object: MetaverseObject) -> ExportEvaluationResult:
        result = ExportEvaluationResult()
        if metaverse_object.id is None:
            return result
        for connected_system_object in self.connected_system_objects.for_metaverse_object(
            metaverse_object.id
        ):
            if (
                connected_system_object.join_type is JoinType.PROVISIONED
                and not connected_system_object.is_obsolete
            ):
                result.pending_exports_to_create.append(
                    _delete_export(connected_system_object, metaverse_object.id)
                )
            connected_system_object.disconnect()
            result.disconnected_objects.append(connected_system_object)
        return result

    # Internals ------------------------------------------------------------------

    def _provision(
        self,
        metaverse_object: MetaverseObject,
        metaverse_object_id: UUID,
        rule: SyncRule,
        result: ExportEvaluationResult,
    ) -> None:
        connected_system_object = ConnectedSystemObject(
            connected_system_id=rule.connected_system_id,
            type_id=rule.connected_system_object_type,
            status=ConnectedSystemObjectStatus.PENDING_PROVISIONING,
            join_type=JoinType.PROVISIONED,
            metaverse_object_id=metaverse_object_id,
            date_joined=utc_now(),
        )
        changes, _unchanged = self._changes_for(
            connected_system_object,
            metaverse_object,
            rule,
            rule.attribute_flow_rules,
        )
        log.info(
            "Provisioning %s for %s via rule %s",
            connected_system_object,
            metaverse_object,
            rule.name,
        )
        result.provisioning_objects.append(connected_system_object)
        result.pending_exports_to_create.append(
            PendingExport(
                connected_system_id=rule.connected_system_id,
                connected_system_object_id=connected_system_object.id,
                change_type=PendingExportChangeType.CREATE,
                attribute_value_changes=changes,
                source_metaverse_object_id=metaverse_object_id,
            )
        )

    def _changes_for(
        self,
        connected_system_object: ConnectedSystemObject,
        metaverse_object: MetaverseObject,
        rule: SyncRule,
        flow_rules: Sequence[AttributeFlowRule],
    ) -> tuple[list[PendingExportAttributeValueChange], int]:
        object_type = self.configuration.object_type(
            rule.connected_system_id,
            rule.connected_system_object_type,
        )
        resolver = self._reference_resolver(rule.connected_system_id)
        changes: list[PendingExportAttributeValueChange] = []
        unchanged = 0
        for flow_rule in flow_rules:
            target = object_type.attribute(flow_rule.target_attribute)
            if target is None:
                log.warning(
                    "Export rule %s targets unknown attribute %s",
                    rule.name,
                    flow_rule.target_attribute,
                )
                continue
            expected = export_values(
                metaverse_object,
                flow_rule,
                target=target,
                connected_system_object=connected_system_object,
                evaluator=self.evaluator,
                resolve_reference=resolver,
            )
            current = connected_system_object.effective_values(target.name)
            to_add, to_remove = diff_values(expected, current)
            if not to_add and not to_remove:
                unchanged += 1
                continue
            changes.extend(export_changes(target, expected, to_add, to_remove))
        return changes, unchanged

    def _stage_update(
        self,
        connected_system_object: ConnectedSystemObject,
        metaverse_object_id: UUID,
        changes: list[PendingExportAttributeValueChange],
        result: ExportEvaluationResult,
    ) -> None:
        existing = next(
            (
                pending_export
                for pending_export in self.pending_exports.for_connected_system_object(
                    connected_system_object.id
                )
                if pending_export.status is PendingExportStatus.PENDING
                and pending_export.change_type is not PendingExportChangeType.DELETE
            ),
            None,
        )
        if existing is None:
            result.pending_exports_to_create.append(
                PendingExport(
                    connected_system_id=connected_system_object.connected_system_id,
                    connected_system_object_id=connected_system_object.id,
                    change_type=PendingExportChangeType.UPDATE,
                    attribute_value_changes=changes,
                    source_metaverse_object_id=metaverse_object_id,
                )
            )
            return

        replaced = {change.attribute for change in changes}
        existing.attribute_value_changes = [
            change
            for change in existing.attribute_value_changes
            if change.attribute not in replaced
        ]
        existing.attribute_value_changes.extend(changes)
        result.pending_exports_to_update.append(existing)

    def _reference_resolver(self, connected_system_id: int) -> ExportReferenceResolver:
        def resolve(metaverse_object_id: UUID) -> UUID | None:
            candidates = self.connected_system_objects.for_metaverse_object(metaverse_object_id)
            for candidate in candidates:
                if candidate.connected_system_id == connected_system_id:
                    return candidate.id
            return None

        return resolve


def _require_id(metaverse_object: MetaverseObject) -> UUID:
    if metaverse_object.id is None:
        raise ValueError(f"{metaverse_object} must be persisted before exports are evaluated")
    return metaverse_object.id


def _joined_object(
    joined: Sequence[ConnectedSystemObject],
    rule: SyncRule,
) -> ConnectedSystemObject | None:
    for connected_system_object in joined:
        if (
            connected_system_object.connected_system_id == rule.connected_system_id
            and connected_system_object.type_id == rule.connected_system_object_type
        ):
            return connected_system_object
    return None


def _delete_export(
    connected_system_object: ConnectedSystemObject,
    metaverse_object_id: UUID | None,
) -> PendingExport:
    return PendingExport(
        connected_system_id=connected_system_object.connected_system_id,
        connected_system_object_id=connected_system_object.id,
        change_type=PendingExportChangeType.DELETE,
        source_metaverse_object_id=metaverse_object_id,
    )
