"""Translate a validated rules document into domain configuration objects."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from metasync.domain.model import (
    AttributeDefinition,
    AttributeFlowRule,
    AttributeFlowSource,
    ConnectedSystem,
    ConnectedSystemObjectType,
    MetaverseObjectType,
    ObjectMatchingRule,
    ScopingCriteriaGroup,
    ScopingCriterion,
    SyncConfiguration,
    SyncRule,
    convert_value,
)

if TYPE_CHECKING:
    from metasync.domain.model import ScalarValue

    from .schema import (
        AttributeDefinitionModel,
        AttributeFlowRuleModel,
        ConnectedSystemModel,
        MetaverseObjectTypeModel,
        ObjectMatchingRuleModel,
        RulesDocument,
        ScopingCriteriaGroupModel,
        ScopingCriterionModel,
        SyncRuleModel,
    )


log = getLogger(__name__)


def to_sync_configuration(document: RulesDocument) -> SyncConfiguration:
    configuration = SyncConfiguration(
        connected_systems=tuple(_connected_system(system) for system in document.connected_systems),
        metaverse_object_types=tuple(
            _metaverse_object_type(object_type) for object_type in document.metaverse_object_types
        ),
        sync_rules=tuple(_sync_rule(rule) for rule in document.sync_rules),
    )
    log.debug(
        "Loaded %s connected systems, %s metaverse object types, %s sync rules",
        len(configuration.connected_systems),
        len(configuration.metaverse_object_types),
        len(configuration.sync_rules),
    )
    return configuration


def _attributes(models: list[AttributeDefinitionModel]) -> tuple[AttributeDefinition, ...]:
    return tuple(
        AttributeDefinition(
            name=model.name,
            data_type=model.data_type,
            multi_valued=model.multi_valued,
        )
        for model in models
    )


def _connected_system(model: ConnectedSystemModel) -> ConnectedSystem:
    return ConnectedSystem(
        id=model.id,
        name=model.name,
        object_types=tuple(
            ConnectedSystemObjectType(
                name=object_type.name,
                attributes=_attributes(object_type.attributes),
                remove_contributed_attributes_on_obsoletion=(
                    object_type.remove_contributed_attributes_on_obsoletion
                ),
            )
            for object_type in model.object_types
        ),
    )


def _metaverse_object_type(model: MetaverseObjectTypeModel) -> MetaverseObjectType:
    return MetaverseObjectType(
        name=model.name,
        attributes=_attributes(model.attributes),
        deletion_rule=model.deletion_rule,
        deletion_grace_period=model.deletion_grace_period,
        deletion_trigger_connected_system_ids=tuple(model.deletion_trigger_connected_system_ids),
    )


def _sync_rule(model: SyncRuleModel) -> SyncRule:
    return SyncRule(
        id=model.id,
        name=model.name,
        connected_system_id=model.connected_system_id,
        connected_system_object_type=model.connected_system_object_type,
        metaverse_object_type=model.metaverse_object_type,
        direction=model.direction,
        enabled=model.enabled,
        project_to_metaverse=model.project_to_metaverse,
        provision_to_connected_system=model.provision_to_connected_system,
        inbound_out_of_scope_action=model.inbound_out_of_scope_action,
        outbound_deprovision_action=model.outbound_deprovision_action,
        enforce_state=model.enforce_state,
        attribute_flow_rules=tuple(_flow_rule(flow) for flow in model.attribute_flow_rules),
        object_matching_rules=tuple(
            _matching_rule(matching, position)
            for position, matching in enumerate(model.object_matching_rules)
        ),
        object_scoping_criteria_groups=tuple(
            _scoping_group(group, position)
            for position, group in enumerate(model.object_scoping_criteria_groups)
        ),
    )


def _flow_rule(model: AttributeFlowRuleModel) -> AttributeFlowRule:
    # sources without an explicit order keep their document position
    return AttributeFlowRule(
        target_attribute=model.target_attribute,
        sources=tuple(
            AttributeFlowSource(
                attribute=source.attribute,
                expression=source.expression,
                order=source.order if source.order is not None else position,
            )
            for position, source in enumerate(model.sources)
        ),
    )


def _matching_rule(model: ObjectMatchingRuleModel, position: int) -> ObjectMatchingRule:
    return ObjectMatchingRule(
        order=model.order if model.order is not None else position,
        source_attribute=model.source_attribute,
        target_attribute=model.target_attribute,
        case_sensitive=model.case_sensitive,
    )


def _scoping_group(model: ScopingCriteriaGroupModel, position: int) -> ScopingCriteriaGroup:
    return ScopingCriteriaGroup(
        type=model.type,
        criteria=tuple(_criterion(criterion) for criterion in model.criteria),
        child_groups=tuple(
            _scoping_group(child, index) for index, child in enumerate(model.child_groups)
        ),
        position=model.position if model.position is not None else position,
    )


def _criterion(model: ScopingCriterionModel) -> ScopingCriterion:
    value: ScalarValue | None = None
    if model.value is not None:
        try:
            value = convert_value(model.value, model.data_type)
        except ValueError as exc:
            raise ValueError(
                f"Scoping criterion on {model.attribute!r}: {exc}"
            ) from exc
    return ScopingCriterion(
        attribute=model.attribute,
        comparison=model.comparison,
        value=value,
        data_type=model.data_type,
        case_sensitive=model.case_sensitive,
    )
