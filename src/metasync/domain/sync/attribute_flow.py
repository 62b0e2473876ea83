"""Attribute flow: value-set differences between a source and a target object.

Responsibilities of this stage:
- compute the values to add and to remove so the target attribute ends up with
  exactly the source's value set (multi-valued attributes are diffed, never
  replaced wholesale)
- compare values by data type: scalars by value, binary by byte sequence,
  references by the metaverse object they resolve to
- stage the result on the MVO pending lists; applying them is a separate step
  (``MetaverseObject.apply_pending_changes``)

Reference attributes flow in a separate pass. While any source reference of
an attribute is unresolved no removal is made for that attribute, and the
caller is told so it can retry once more objects exist.

``export_values`` runs the same mappings in the other direction and yields
the values an export rule implies for a connected system attribute.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from metasync.domain.model import (
    AttributeChangeType,
    AttributeDataType,
    AttributeValue,
    MetaverseObject,
    PendingExportAttributeValueChange,
    SyncConfigurationError,
    convert_value,
)

from .expressions import ExpressionContext, referenced_metaverse_attributes

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable, Sequence

    from metasync.domain.model import (
        AttributeDefinition,
        AttributeFlowRule,
        AttributeFlowSource,
        ConnectedSystemObject,
        ConnectedSystemObjectType,
        MetaverseObjectType,
        SyncRule,
    )

    from .expressions import ExpressionEvaluator


log = logging.getLogger(__name__)

type ReferenceResolver = Callable[[UUID], MetaverseObject | UUID | None]
"""Maps a referenced CSO id to its MVO (object or id), or None while unresolved."""


@dataclass(slots=True, kw_only=True)
class FlowContext:
    connected_system_id: int
    source_type: ConnectedSystemObjectType
    target_type: MetaverseObjectType
    evaluator: ExpressionEvaluator
    resolve_reference: ReferenceResolver


@dataclass(slots=True)
class FlowResult:
    additions: int = 0
    removals: int = 0
    unresolved_references: bool = False

    def add(self, other: FlowResult) -> None:
        self.additions += other.additions
        self.removals += other.removals
        self.unresolved_references = self.unresolved_references or other.unresolved_references

    @property
    def has_changes(self) -> bool:
        return bool(self.additions or self.removals)


# Value comparison -------------------------------------------------------------


def value_key(value: AttributeValue) -> Hashable:
    """Identity used for set comparison of attribute values."""

    match value.data_type:
        case AttributeDataType.REFERENCE:
            return (AttributeDataType.REFERENCE, value.reference_target)
        case AttributeDataType.BINARY:
            raw = value.value
            return (AttributeDataType.BINARY, bytes(raw) if isinstance(raw, bytes) else raw)
        case AttributeDataType.DATETIME:
            raw = value.value
            if isinstance(raw, datetime):
                raw = raw.replace(tzinfo=UTC) if raw.tzinfo is None else raw.astimezone(UTC)
            return (AttributeDataType.DATETIME, raw)
        case AttributeDataType.NUMBER | AttributeDataType.LONG_NUMBER:
            return (AttributeDataType.NUMBER, value.value)
        case _:
            return (value.data_type, value.value)


def diff_values(
    source: Iterable[AttributeValue],
    target: Sequence[AttributeValue],
) -> tuple[list[AttributeValue], list[AttributeValue]]:
    """Return ``(to_add, to_remove)``.

    ``to_add`` holds source values missing from ``target``; ``to_remove`` holds
    target values absent from ``source``. Applying both to ``target`` yields the
    source's value set.
    """

    target_keys = {value_key(value) for value in target}
    source_keys: set[Hashable] = set()
    to_add: list[AttributeValue] = []
    for value in source:
        key = value_key(value)
        if key in source_keys:
            continue
        source_keys.add(key)
        if key not in target_keys:
            to_add.append(value)
    to_remove = [value for value in target if value_key(value) not in source_keys]
    return to_add, to_remove


def stage_changes(
    metaverse_object: MetaverseObject,
    to_add: Sequence[AttributeValue],
    to_remove: Sequence[AttributeValue],
) -> FlowResult:
    pending_removals = {id(value) for value in metaverse_object.pending_attribute_value_removals}
    removals = [value for value in to_remove if id(value) not in pending_removals]
    metaverse_object.pending_attribute_value_additions.extend(to_add)
    metaverse_object.pending_attribute_value_removals.extend(removals)
    return FlowResult(additions=len(to_add), removals=len(removals))


# Import flow ------------------------------------------------------------------


def is_reference_flow(flow_rule: AttributeFlowRule, target_type: MetaverseObjectType) -> bool:
    return _target_definition(flow_rule, target_type).data_type is AttributeDataType.REFERENCE


def flow_import_rule(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    rule: SyncRule,
    *,
    context: FlowContext,
    reference_pass: bool,
) -> FlowResult:
    """Flow every mapping of ``rule`` belonging to the requested pass."""

    result = FlowResult()
    for flow_rule in rule.attribute_flow_rules:
        if is_reference_flow(flow_rule, context.target_type) != reference_pass:
            continue
        result.add(
            flow_attribute(
                connected_system_object,
                metaverse_object,
                flow_rule,
                context=context,
            )
        )
    return result


def flow_attribute(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    flow_rule: AttributeFlowRule,
    *,
    context: FlowContext,
) -> FlowResult:
    """Flow one mapping from the CSO onto the MVO.

    Sources are ordered fallbacks: the first source yielding any value wins. A
    mapping whose sources all yield nothing removes the target values.
    """

    target = _target_definition(flow_rule, context.target_type)
    current = metaverse_object.values_for(target.name)

    for source in sorted(flow_rule.sources, key=lambda item: item.order):
        if source.expression is not None:
            outcome = _flow_expression(
                connected_system_object,
                metaverse_object,
                source.expression,
                target,
                current,
                context=context,
            )
            if outcome is not None:
                return outcome
            continue

        source_definition = _source_definition(source, context.source_type)
        source_values = connected_system_object.effective_values(source_definition.name)
        if not source_values:
            continue
        if target.data_type is AttributeDataType.REFERENCE:
            return _flow_references(source_values, target, current, metaverse_object, context)
        system_id = context.connected_system_id
        converted = [_convert(value, target, system_id) for value in source_values]
        if not target.multi_valued:
            converted = converted[:1]
        to_add, to_remove = diff_values(converted, current)
        return stage_changes(metaverse_object, to_add, to_remove)

    return stage_changes(metaverse_object, (), current)


def _flow_references(
    source_values: Sequence[AttributeValue],
    target: AttributeDefinition,
    current: Sequence[AttributeValue],
    metaverse_object: MetaverseObject,
    context: FlowContext,
) -> FlowResult:
    resolved: list[AttributeValue] = []
    unresolved = False
    for source_value in source_values:
        referenced_id = source_value.value
        if not isinstance(referenced_id, UUID):
            log.warning(
                "Ignoring reference value %r on %s: not an object id",
                referenced_id,
                target.name,
            )
            continue
        reference = context.resolve_reference(referenced_id)
        if reference is None:
            unresolved = True
            continue
        resolved.append(_reference_value(reference, target, context.connected_system_id))

    if not target.multi_valued:
        resolved = resolved[:1]
    to_add, to_remove = diff_values(resolved, current)
    if unresolved:
        # removals wait until every source reference resolves
        result = stage_changes(metaverse_object, to_add, ())
        result.unresolved_references = True
        return result
    return stage_changes(metaverse_object, to_add, to_remove)


def _flow_expression(
    connected_system_object: ConnectedSystemObject,
    metaverse_object: MetaverseObject,
    expression: str,
    target: AttributeDefinition,
    current: Sequence[AttributeValue],
    *,
    context: FlowContext,
) -> FlowResult | None:
    expression_context = ExpressionContext(
        cs=first_values(connected_system_object.effective_attribute_values()),
        mv=first_values(metaverse_object.attribute_values),
    )
    result = context.evaluator.evaluate(expression, expression_context)
    if result is None:
        return None

    if isinstance(result, list):
        items: list[object] = list(result)  # pyright: ignore[reportUnknownArgumentType]
        values = [
            _new_value(item, target, context.connected_system_id)
            for item in items
            if item is not None
        ]
        if not target.multi_valued:
            values = values[:1]
        to_add, to_remove = diff_values(values, current)
        return stage_changes(metaverse_object, to_add, to_remove)

    value = _new_value(result, target, context.connected_system_id)
    if len(current) == 1 and value_key(current[0]) == value_key(value):
        return FlowResult()
    return stage_changes(metaverse_object, [value], current)


# Export flow ------------------------------------------------------------------


type ExportReferenceResolver = Callable[[UUID], UUID | None]
"""Maps a referenced MVO id to the id of its CSO in the export target system."""


def export_values(
    metaverse_object: MetaverseObject,
    flow_rule: AttributeFlowRule,
    *,
    target: AttributeDefinition,
    connected_system_object: ConnectedSystemObject | None,
    evaluator: ExpressionEvaluator,
    resolve_reference: ExportReferenceResolver,
) -> list[AttributeValue]:
    """Values an export mapping implies for the CSO attribute ``target``.

    Uses the same ordered fallback over sources as import flow. An empty list
    means the target attribute should hold no value.
    """

    for source in sorted(flow_rule.sources, key=lambda item: item.order):
        if source.expression is not None:
            context = ExpressionContext(
                cs=(
                    first_values(connected_system_object.effective_attribute_values())
                    if connected_system_object is not None
                    else {}
                ),
                mv=first_values(metaverse_object.attribute_values),
            )
            result = evaluator.evaluate(source.expression, context)
            if result is None:
                continue
            raw_items: list[object] = (
                list(result)  # pyright: ignore[reportUnknownArgumentType]
                if isinstance(result, list)
                else [result]
            )
            values = [_cso_value(item, target) for item in raw_items if item is not None]
        elif source.attribute is not None:
            source_values = metaverse_object.values_for(source.attribute)
            if target.data_type is AttributeDataType.REFERENCE:
                values = _export_references(source_values, target, resolve_reference)
            else:
                values = [_cso_value(value.value, target) for value in source_values]
        else:
            raise SyncConfigurationError(
                "Attribute flow source has neither attribute nor expression"
            )
        if values:
            return values if target.multi_valued else values[:1]
    return []


def export_source_attributes(flow_rule: AttributeFlowRule) -> set[str]:
    """MVO attributes an export mapping reads, directly or from expressions."""

    names: set[str] = set()
    for source in flow_rule.sources:
        if source.attribute is not None:
            names.add(source.attribute)
        if source.expression is not None:
            names |= referenced_metaverse_attributes(source.expression)
    return names


def export_changes(
    target: AttributeDefinition,
    expected: Sequence[AttributeValue],
    to_add: Sequence[AttributeValue],
    to_remove: Sequence[AttributeValue],
) -> list[PendingExportAttributeValueChange]:
    """Pending export changes moving a CSO attribute to ``expected``.

    Multi-valued attributes get one ``ADD``/``REMOVE`` per value; single-valued
    attributes get one ``UPDATE`` or a ``REMOVE_ALL``.
    """

    if not target.multi_valued:
        if not expected:
            return [
                PendingExportAttributeValueChange(
                    attribute=target.name,
                    change_type=AttributeChangeType.REMOVE_ALL,
                    data_type=target.data_type,
                )
            ]
        return [
            PendingExportAttributeValueChange(
                attribute=target.name,
                change_type=AttributeChangeType.UPDATE,
                data_type=target.data_type,
                value=expected[0].value,
            )
        ]
    changes = [
        PendingExportAttributeValueChange(
            attribute=target.name,
            change_type=AttributeChangeType.ADD,
            data_type=target.data_type,
            value=value.value,
        )
        for value in to_add
    ]
    changes.extend(
        PendingExportAttributeValueChange(
            attribute=target.name,
            change_type=AttributeChangeType.REMOVE,
            data_type=target.data_type,
            value=value.value,
        )
        for value in to_remove
    )
    return changes


def _export_references(
    source_values: Sequence[AttributeValue],
    target: AttributeDefinition,
    resolve_reference: ExportReferenceResolver,
) -> list[AttributeValue]:
    values: list[AttributeValue] = []
    for source_value in source_values:
        referenced = source_value.reference_target
        if not isinstance(referenced, UUID):
            continue
        connected_system_object_id = resolve_reference(referenced)
        if connected_system_object_id is None:
            log.debug("Referenced MVO %s has no object in the target system yet", referenced)
            continue
        values.append(_cso_value(connected_system_object_id, target))
    return values


def _cso_value(raw: object, target: AttributeDefinition) -> AttributeValue:
    return AttributeValue(
        attribute=target.name,
        data_type=target.data_type,
        value=convert_value(raw, target.data_type),
    )


# Helpers ----------------------------------------------------------------------


def first_values(values: Iterable[AttributeValue]) -> dict[str, object]:
    """First value per attribute name, as seen by expressions."""

    firsts: dict[str, object] = {}
    for value in values:
        firsts.setdefault(value.attribute, value.value)
    return firsts


def _target_definition(
    flow_rule: AttributeFlowRule,
    target_type: MetaverseObjectType,
) -> AttributeDefinition:
    definition = target_type.attribute(flow_rule.target_attribute)
    if definition is None:
        raise SyncConfigurationError(
            f"Metaverse object type {target_type.name!r} has no attribute "
            f"{flow_rule.target_attribute!r}"
        )
    return definition


def _source_definition(
    source: AttributeFlowSource,
    source_type: ConnectedSystemObjectType,
) -> AttributeDefinition:
    if source.attribute is None:
        raise SyncConfigurationError("Attribute flow source has neither attribute nor expression")
    definition = source_type.attribute(source.attribute)
    if definition is None:
        raise SyncConfigurationError(
            f"Connected system object type {source_type.name!r} has no attribute "
            f"{source.attribute!r}"
        )
    return definition


def _convert(
    value: AttributeValue,
    target: AttributeDefinition,
    connected_system_id: int,
) -> AttributeValue:
    return _new_value(value.value, target, connected_system_id)


def _new_value(
    raw: object,
    target: AttributeDefinition,
    connected_system_id: int,
) -> AttributeValue:
    return AttributeValue(
        attribute=target.name,
        data_type=target.data_type,
        value=convert_value(raw, target.data_type),
        contributed_by_system_id=connected_system_id,
    )


def _reference_value(
    reference: MetaverseObject | UUID,
    target: AttributeDefinition,
    connected_system_id: int,
) -> AttributeValue:
    if isinstance(reference, MetaverseObject):
        if reference.id is not None:
            return AttributeValue(
                attribute=target.name,
                data_type=AttributeDataType.REFERENCE,
                value=reference.id,
                contributed_by_system_id=connected_system_id,
            )
        return AttributeValue(
            attribute=target.name,
            data_type=AttributeDataType.REFERENCE,
            reference=reference,
            contributed_by_system_id=connected_system_id,
        )
    return AttributeValue(
        attribute=target.name,
        data_type=AttributeDataType.REFERENCE,
        value=reference,
        contributed_by_system_id=connected_system_id,
    )
