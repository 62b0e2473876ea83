"""Drift detection: connected system values diverging from enforced export state.

Responsibilities of this stage:
- compare a joined CSO's live values with what its system's enforcing export
  rules derive from the MVO
- never flag attributes the CSO's own system legitimately imports; the import
  mapping cache covers every system's import rules so export-only systems are
  judged correctly
- stage corrective pending exports; the CSO itself is never modified
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metasync.domain.model import (
    ConnectedSystemObjectStatus,
    PendingExport,
    PendingExportChangeType,
    PendingExportStatus,
)

from .attribute_flow import diff_values, export_changes, export_source_attributes, export_values
from .contracts import DriftResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from metasync.domain.model import (
        AttributeFlowRule,
        ConnectedSystemObject,
        ConnectedSystemObjectType,
        MetaverseObject,
        PendingExportAttributeValueChange,
        SyncRule,
    )

    from .attribute_flow import ExportReferenceResolver
    from .expressions import ExpressionEvaluator


log = logging.getLogger(__name__)

type ImportMappingCache = dict[tuple[int, str], list[AttributeFlowRule]]
"""``(connected system id, MVO attribute) -> import mappings`` writing that attribute."""


def build_import_mapping_cache(sync_rules: Iterable[SyncRule]) -> ImportMappingCache:
    """Index the enabled import mappings of every connected system."""

    cache: ImportMappingCache = {}
    for rule in sync_rules:
        if not rule.enabled or not rule.is_import:
            continue
        for flow_rule in rule.attribute_flow_rules:
            cache.setdefault((rule.connected_system_id, flow_rule.target_attribute), []).append(
                flow_rule
            )
    return cache


def enforcing_export_rules(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    export_rules: Iterable[SyncRule],
) -> list[SyncRule]:
    return [
        rule
        for rule in export_rules
        if rule.enabled
        and rule.is_export
        and rule.enforce_state
        and rule.connected_system_id == connected_system_object.connected_system_id
        and rule.connected_system_object_type == connected_system_object.type_id
        and rule.metaverse_object_type == metaverse_object.type
    ]


def evaluate_drift(  # noqa: PLR0913
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    *,
    export_rules: Sequence[SyncRule],
    import_mapping_cache: ImportMappingCache,
    object_type: ConnectedSystemObjectType,
    evaluator: ExpressionEvaluator,
    resolve_reference: ExportReferenceResolver,
    existing_exports: Sequence[PendingExport] = (),
) -> DriftResult:
    """Compare ``connected_system_object`` with the state enforced from ``metaverse_object``.

    Attributes already covered by a pending export for the CSO are left to
    that export.
    """

    result = DriftResult()
    if connected_system_object.status is ConnectedSystemObjectStatus.PENDING_PROVISIONING:
        return result
    rules = enforcing_export_rules(connected_system_object, metaverse_object, export_rules)
    if not rules:
        return result

    system_id = connected_system_object.connected_system_id
    awaiting_export = {
        change.attribute
        for export in existing_exports
        if export.status is PendingExportStatus.PENDING
        for change in export.attribute_value_changes
    }
    changes: list[PendingExportAttributeValueChange] = []

    for rule in rules:
        for flow_rule in rule.attribute_flow_rules:
            target_name = flow_rule.target_attribute
            if target_name in awaiting_export or target_name in result.drifted_attributes:
                continue
            if any(
                (system_id, attribute) in import_mapping_cache
                for attribute in export_source_attributes(flow_rule)
            ):
                continue
            target = object_type.attribute(target_name)
            if target is None:
                log.warning(
                    "Export rule %s targets unknown attribute %s on %s",
                    rule.name,
                    target_name,
                    object_type.name,
                )
                continue

            expected = export_values(
                metaverse_object,
                flow_rule,
                target=target,
                connected_system_object=connected_system_object,
                evaluator=evaluator,
                resolve_reference=resolve_reference,
            )
            actual = connected_system_object.effective_values(target_name)
            to_add, to_remove = diff_values(expected, actual)
            if not to_add and not to_remove:
                continue

            log.info("Drift on %s attribute %s", connected_system_object, target_name)
            result.drifted_attributes.append(target_name)
            changes.extend(export_changes(target, expected, to_add, to_remove))

    if changes:
        result.corrective_exports.append(
            PendingExport(
                connected_system_id=system_id,
                connected_system_object_id=connected_system_object.id,
                change_type=PendingExportChangeType.UPDATE,
                attribute_value_changes=changes,
                source_metaverse_object_id=metaverse_object.id,
            )
        )
    return result

