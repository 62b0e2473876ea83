"""Pydantic models describing the sync configuration document.

The document is a single JSON object::

    {
      "connected_systems": [{"id": 1, "name": "HR", "object_types": [...]}],
      "metaverse_object_types": [{"name": "person", "deletion_rule": "manual"}],
      "sync_rules": [{"id": 1, "direction": "import", ...}]
    }

Enum fields take the lower-case values of the domain enums.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator, model_validator

from metasync.domain.model import (
    AttributeDataType,
    ComparisonType,
    DeletionRule,
    InboundOutOfScopeAction,
    OutboundDeprovisionAction,
    ScopingGroupType,
    SyncRuleDirection,
)


def _strip(value: object) -> object:
    if isinstance(value, str):
        return value.strip()
    return value


class RulesBaseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class AttributeDefinitionModel(RulesBaseModel):
    name: str = Field(min_length=1)
    data_type: AttributeDataType = AttributeDataType.TEXT
    multi_valued: bool = False

    _normalize_name = field_validator("name", mode="before")(_strip)


class ConnectedSystemObjectTypeModel(RulesBaseModel):
    name: str = Field(min_length=1)
    attributes: list[AttributeDefinitionModel] = Field(default_factory=list)
    remove_contributed_attributes_on_obsoletion: bool = False


class ConnectedSystemModel(RulesBaseModel):
    id: int
    name: str
    object_types: list[ConnectedSystemObjectTypeModel] = Field(default_factory=list)


class MetaverseObjectTypeModel(RulesBaseModel):
    name: str = Field(min_length=1)
    attributes: list[AttributeDefinitionModel] = Field(default_factory=list)
    deletion_rule: DeletionRule = DeletionRule.MANUAL
    deletion_grace_period: timedelta | None = None
    deletion_trigger_connected_system_ids: list[int] = Field(default_factory=list)

    @field_validator("deletion_grace_period")
    @classmethod
    def _non_negative(cls, value: timedelta | None) -> timedelta | None:
        if value is not None and value < timedelta(0):
            raise ValueError("deletion_grace_period must not be negative")
        return value


class ScopingCriterionModel(RulesBaseModel):
    attribute: str
    comparison: ComparisonType
    value: JsonValue = None
    data_type: AttributeDataType = AttributeDataType.TEXT
    case_sensitive: bool = True


class ScopingCriteriaGroupModel(RulesBaseModel):
    type: ScopingGroupType = ScopingGroupType.ALL
    criteria: list[ScopingCriterionModel] = Field(default_factory=list)
    child_groups: list[ScopingCriteriaGroupModel] = Field(default_factory=list)
    position: int | None = None


class AttributeFlowSourceModel(RulesBaseModel):
    attribute: str | None = None
    expression: str | None = None
    order: int | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> Self:
        if (self.attribute is None) == (self.expression is None):
            raise ValueError("set exactly one of 'attribute' or 'expression'")
        return self


class AttributeFlowRuleModel(RulesBaseModel):
    target_attribute: str = Field(min_length=1)
    sources: list[AttributeFlowSourceModel] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _single_source_shorthand(cls, value: object) -> object:
        # {"target_attribute": "x", "source": "y"} is accepted for direct flows
        if isinstance(value, dict) and "source" in value and "sources" not in value:
            data = dict(value)  # pyright: ignore[reportUnknownArgumentType]
            data["sources"] = [{"attribute": data.pop("source")}]
            return data
        return value


class ObjectMatchingRuleModel(RulesBaseModel):
    order: int | None = None
    source_attribute: str
    target_attribute: str
    case_sensitive: bool = True


class SyncRuleModel(RulesBaseModel):
    id: int
    name: str
    connected_system_id: int
    connected_system_object_type: str
    metaverse_object_type: str
    direction: SyncRuleDirection
    enabled: bool = True
    project_to_metaverse: bool = False
    provision_to_connected_system: bool = False
    inbound_out_of_scope_action: InboundOutOfScopeAction = InboundOutOfScopeAction.DISCONNECT
    outbound_deprovision_action: OutboundDeprovisionAction = OutboundDeprovisionAction.DISCONNECT
    enforce_state: bool = True
    attribute_flow_rules: list[AttributeFlowRuleModel] = Field(default_factory=list)
    object_matching_rules: list[ObjectMatchingRuleModel] = Field(default_factory=list)
    object_scoping_criteria_groups: list[ScopingCriteriaGroupModel] = Field(default_factory=list)


class RulesDocument(RulesBaseModel):
    connected_systems: list[ConnectedSystemModel] = Field(default_factory=list)
    metaverse_object_types: list[MetaverseObjectTypeModel] = Field(default_factory=list)
    sync_rules: list[SyncRuleModel] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> Self:
        system_ids = [system.id for system in self.connected_systems]
        if len(system_ids) != len(set(system_ids)):
            raise ValueError("connected system ids must be unique")
        rule_ids = [rule.id for rule in self.sync_rules]
        if len(rule_ids) != len(set(rule_ids)):
            raise ValueError("sync rule ids must be unique")
        type_names = [object_type.name for object_type in self.metaverse_object_types]
        if len(type_names) != len(set(type_names)):
            raise ValueError("metaverse object type names must be unique")
        return self
