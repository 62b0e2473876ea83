"""Sync rules and the configuration they are evaluated against.

Configuration objects are plain value objects: they are loaded once per run
(see ``metasync.adapters.rules``) and never mutated by the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .enums import (
    AttributeDataType,
    ComparisonType,
    DeletionRule,
    InboundOutOfScopeAction,
    OutboundDeprovisionAction,
    ScopingGroupType,
    SyncRuleDirection,
    ValidationSeverity,
)

if TYPE_CHECKING:
    from datetime import timedelta

    from .values import AttributeDefinition, ScalarValue


class SyncConfigurationError(RuntimeError):
    """Raised for systemic configuration problems that abort a synchronisation run."""


# Object types -----------------------------------------------------------------


@dataclass(slots=True, kw_only=True, frozen=True)
class ConnectedSystemObjectType:
    name: str
    attributes: tuple[AttributeDefinition, ...] = ()
    remove_contributed_attributes_on_obsoletion: bool = False

    def attribute(self, name: str) -> AttributeDefinition | None:
        for definition in self.attributes:
            if definition.name == name:
                return definition
        return None


@dataclass(slots=True, kw_only=True, frozen=True)
class MetaverseObjectType:
    name: str
    attributes: tuple[AttributeDefinition, ...] = ()
    deletion_rule: DeletionRule = DeletionRule.MANUAL
    deletion_grace_period: timedelta | None = None
    deletion_trigger_connected_system_ids: tuple[int, ...] = ()

    def attribute(self, name: str) -> AttributeDefinition | None:
        for definition in self.attributes:
            if definition.name == name:
                return definition
        return None


@dataclass(slots=True, kw_only=True, frozen=True)
class ConnectedSystem:
    id: int
    name: str
    object_types: tuple[ConnectedSystemObjectType, ...] = ()

    def object_type(self, name: str) -> ConnectedSystemObjectType | None:
        for object_type in self.object_types:
            if object_type.name == name:
                return object_type
        return None


# Scoping ----------------------------------------------------------------------


@dataclass(slots=True, kw_only=True, frozen=True)
class ScopingCriterion:
    """One comparison of an object attribute against a typed constant."""

    attribute: str
    comparison: ComparisonType
    value: ScalarValue | None = None
    data_type: AttributeDataType = AttributeDataType.TEXT
    case_sensitive: bool = True


@dataclass(slots=True, kw_only=True, frozen=True)
class ScopingCriteriaGroup:
    """Criteria combined with ALL/ANY semantics, optionally nesting child groups."""

    type: ScopingGroupType = ScopingGroupType.ALL
    criteria: tuple[ScopingCriterion, ...] = ()
    child_groups: tuple[ScopingCriteriaGroup, ...] = ()
    position: int = 0


# Mapping ----------------------------------------------------------------------


@dataclass(slots=True, kw_only=True, frozen=True)
class AttributeFlowSource:
    """A direct attribute or a formula expression feeding a flow rule."""

    attribute: str | None = None
    expression: str | None = None
    order: int = 0


@dataclass(slots=True, kw_only=True, frozen=True)
class AttributeFlowRule:
    """Maps source values onto ``target_attribute``.

    Import rules read CSO attributes and write MVO attributes; export rules read
    MVO attributes and write CSO attributes.
    """

    target_attribute: str
    sources: tuple[AttributeFlowSource, ...] = ()


@dataclass(slots=True, kw_only=True, frozen=True)
class ObjectMatchingRule:
    order: int = 0
    source_attribute: str
    target_attribute: str
    case_sensitive: bool = True


@dataclass(slots=True, kw_only=True, frozen=True)
class SyncRuleValidationIssue:
    severity: ValidationSeverity
    message: str


@dataclass(slots=True, kw_only=True, frozen=True)
class SyncRule:
    """Declarative mapping between one connected system object type and one MVO type."""

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
    attribute_flow_rules: tuple[AttributeFlowRule, ...] = ()
    object_matching_rules: tuple[ObjectMatchingRule, ...] = ()
    object_scoping_criteria_groups: tuple[ScopingCriteriaGroup, ...] = ()

    @property
    def is_import(self) -> bool:
        return self.direction is SyncRuleDirection.IMPORT

    @property
    def is_export(self) -> bool:
        return self.direction is SyncRuleDirection.EXPORT

    @property
    def has_scoping_criteria(self) -> bool:
        return bool(self.object_scoping_criteria_groups)

    def validate(self) -> list[SyncRuleValidationIssue]:
        """Return configuration problems; an empty list means the rule is usable."""

        issues: list[SyncRuleValidationIssue] = []

        def error(message: str) -> None:
            issues.append(
                SyncRuleValidationIssue(severity=ValidationSeverity.ERROR, message=message)
            )

        def warning(message: str) -> None:
            issues.append(
                SyncRuleValidationIssue(severity=ValidationSeverity.WARNING, message=message)
            )

        if not self.connected_system_object_type:
            error("A connected system object type must be set.")
        if not self.metaverse_object_type:
            error("A metaverse object type must be set.")

        for index, flow_rule in enumerate(self.attribute_flow_rules):
            if not flow_rule.target_attribute:
                error(f"Attribute flow rule {index} has no target attribute.")
            if not flow_rule.sources:
                error(f"Attribute flow rule {index} has no sources.")
            for source in flow_rule.sources:
                if (source.attribute is None) == (source.expression is None):
                    error(
                        f"Attribute flow rule {index} source must set exactly one of "
                        "attribute or expression."
                    )

        for matching_rule in self.object_matching_rules:
            if not matching_rule.source_attribute or not matching_rule.target_attribute:
                error(f"Object matching rule {matching_rule.order} is missing an attribute.")

        if self.is_import and self.project_to_metaverse and not self.attribute_flow_rules:
            warning("Projecting rule has no attribute flow rules; projected objects stay empty.")
        if self.is_export and self.project_to_metaverse:
            warning("Export rules do not project; project_to_metaverse is ignored.")
        if self.is_import and self.provision_to_connected_system:
            warning("Import rules do not provision; provision_to_connected_system is ignored.")

        return issues

    def is_valid(self) -> bool:
        return not any(
            issue.severity is ValidationSeverity.ERROR for issue in self.validate()
        )


# Aggregate --------------------------------------------------------------------


@dataclass(slots=True, kw_only=True)
class SyncConfiguration:
    """Everything the engine needs to know about systems, types and rules."""

    connected_systems: tuple[ConnectedSystem, ...] = ()
    metaverse_object_types: tuple[MetaverseObjectType, ...] = ()
    sync_rules: tuple[SyncRule, ...] = ()
    _systems_by_id: dict[int, ConnectedSystem] = field(init=False, repr=False)
    _mv_types_by_name: dict[str, MetaverseObjectType] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._systems_by_id = {system.id: system for system in self.connected_systems}
        self._mv_types_by_name = {
            object_type.name: object_type for object_type in self.metaverse_object_types
        }

    def connected_system(self, system_id: int) -> ConnectedSystem:
        system = self._systems_by_id.get(system_id)
        if system is None:
            raise SyncConfigurationError(f"Unknown connected system: {system_id}")
        return system

    def object_type(self, system_id: int, name: str) -> ConnectedSystemObjectType:
        object_type = self.connected_system(system_id).object_type(name)
        if object_type is None:
            raise SyncConfigurationError(
                f"Connected system {system_id} has no object type named {name!r}"
            )
        return object_type

    def metaverse_object_type(self, name: str) -> MetaverseObjectType:
        object_type = self._mv_types_by_name.get(name)
        if object_type is None:
            raise SyncConfigurationError(f"Unknown metaverse object type: {name!r}")
        return object_type

    def active_rules(self, system_id: int | None = None) -> list[SyncRule]:
        return [
            rule
            for rule in self.sync_rules
            if rule.enabled and (system_id is None or rule.connected_system_id == system_id)
        ]

    def import_rules(self, system_id: int, object_type: str | None = None) -> list[SyncRule]:
        return [
            rule
            for rule in self.active_rules(system_id)
            if rule.is_import
            and (object_type is None or rule.connected_system_object_type == object_type)
        ]

    def export_rules(self, *, metaverse_object_type: str | None = None) -> list[SyncRule]:
        return [
            rule
            for rule in self.active_rules()
            if rule.is_export
            and (
                metaverse_object_type is None
                or rule.metaverse_object_type == metaverse_object_type
            )
        ]

    def validate(self) -> dict[int, list[SyncRuleValidationIssue]]:
        """Validate every rule, including references to unknown systems or types."""

        issues_by_rule: dict[int, list[SyncRuleValidationIssue]] = {}
        for rule in self.sync_rules:
            issues = rule.validate()
            system = self._systems_by_id.get(rule.connected_system_id)
            if system is None:
                issues.append(
                    SyncRuleValidationIssue(
                        severity=ValidationSeverity.ERROR,
                        message=f"Unknown connected system {rule.connected_system_id}.",
                    )
                )
            elif system.object_type(rule.connected_system_object_type) is None:
                issues.append(
                    SyncRuleValidationIssue(
                        severity=ValidationSeverity.ERROR,
                        message=(
                            f"Connected system {system.name!r} has no object type "
                            f"{rule.connected_system_object_type!r}."
                        ),
                    )
                )
            if rule.metaverse_object_type not in self._mv_types_by_name:
                issues.append(
                    SyncRuleValidationIssue(
                        severity=ValidationSeverity.ERROR,
                        message=f"Unknown metaverse object type {rule.metaverse_object_type!r}.",
                    )
                )
            if issues:
                issues_by_rule[rule.id] = issues
        return issues_by_rule

