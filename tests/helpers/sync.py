"""Configuration and object builders shared by the synchronisation tests.

The default configuration models an HR system (id 1) projecting ``person``
objects into the metaverse and a directory (id 2) that ``person`` objects are
provisioned to. The directory imports only its account name back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from metasync.domain.model import (
    AttributeDataType,
    AttributeDefinition,
    AttributeFlowRule,
    AttributeFlowSource,
    AttributeValue,
    ComparisonType,
    ConnectedSystem,
    ConnectedSystemObject,
    ConnectedSystemObjectStatus,
    ConnectedSystemObjectType,
    DeletionRule,
    InboundOutOfScopeAction,
    JoinType,
    MetaverseObject,
    MetaverseObjectType,
    ObjectMatchingRule,
    OutboundDeprovisionAction,
    ScopingCriteriaGroup,
    ScopingCriterion,
    SyncConfiguration,
    SyncRule,
    SyncRuleDirection,
    new_id,
)

if TYPE_CHECKING:
    from datetime import datetime, timedelta

    from metasync.domain.model import ScalarValue

HR_SYSTEM_ID = 1
DIRECTORY_SYSTEM_ID = 2

HR_IMPORT_RULE_ID = 10
DIRECTORY_EXPORT_RULE_ID = 20
DIRECTORY_IMPORT_RULE_ID = 30

EMPLOYEE = ConnectedSystemObjectType(
    name="employee",
    attributes=(
        AttributeDefinition(name="employeeId", data_type=AttributeDataType.TEXT),
        AttributeDefinition(name="displayName", data_type=AttributeDataType.TEXT),
        AttributeDefinition(name="department", data_type=AttributeDataType.TEXT),
        AttributeDefinition(name="status", data_type=AttributeDataType.TEXT),
        AttributeDefinition(name="manager", data_type=AttributeDataType.REFERENCE),
        AttributeDefinition(
            name="groups",
            data_type=AttributeDataType.TEXT,
            multi_valued=True,
        ),
    ),
)

DIRECTORY_USER_ATTRIBUTES = (
    AttributeDefinition(name="accountName", data_type=AttributeDataType.TEXT),
    AttributeDefinition(name="displayName", data_type=AttributeDataType.TEXT),
    AttributeDefinition(name="department", data_type=AttributeDataType.TEXT),
)

PERSON_ATTRIBUTES = (
    AttributeDefinition(name="EmployeeId", data_type=AttributeDataType.TEXT),
    AttributeDefinition(name="DisplayName", data_type=AttributeDataType.TEXT),
    AttributeDefinition(name="Department", data_type=AttributeDataType.TEXT),
    AttributeDefinition(name="Manager", data_type=AttributeDataType.REFERENCE),
    AttributeDefinition(name="Groups", data_type=AttributeDataType.TEXT, multi_valued=True),
)


def flow(target: str, *sources: str) -> AttributeFlowRule:
    return AttributeFlowRule(
        target_attribute=target,
        sources=tuple(
            AttributeFlowSource(attribute=source, order=position)
            for position, source in enumerate(sources)
        ),
    )


def expression_flow(target: str, expression: str) -> AttributeFlowRule:
    return AttributeFlowRule(
        target_attribute=target,
        sources=(AttributeFlowSource(expression=expression),),
    )


def status_scope(value: str = "active") -> tuple[ScopingCriteriaGroup, ...]:
    return (
        ScopingCriteriaGroup(
            criteria=(
                ScopingCriterion(
                    attribute="status",
                    comparison=ComparisonType.EQUALS,
                    value=value,
                ),
            ),
        ),
    )


def hr_import_rule(
    *,
    scoping: tuple[ScopingCriteriaGroup, ...] = (),
    out_of_scope_action: InboundOutOfScopeAction = InboundOutOfScopeAction.DISCONNECT,
    project: bool = True,
    flows: tuple[AttributeFlowRule, ...] | None = None,
) -> SyncRule:
    return SyncRule(
        id=HR_IMPORT_RULE_ID,
        name="HR employees to people",
        connected_system_id=HR_SYSTEM_ID,
        connected_system_object_type="employee",
        metaverse_object_type="person",
        direction=SyncRuleDirection.IMPORT,
        project_to_metaverse=project,
        inbound_out_of_scope_action=out_of_scope_action,
        attribute_flow_rules=flows
        if flows is not None
        else (
            flow("EmployeeId", "employeeId"),
            flow("DisplayName", "displayName"),
            flow("Department", "department"),
            flow("Manager", "manager"),
            flow("Groups", "groups"),
        ),
        object_matching_rules=(
            ObjectMatchingRule(source_attribute="employeeId", target_attribute="EmployeeId"),
        ),
        object_scoping_criteria_groups=scoping,
    )


def directory_export_rule(
    *,
    provision: bool = True,
    enforce_state: bool = True,
    scoping: tuple[ScopingCriteriaGroup, ...] = (),
    deprovision_action: OutboundDeprovisionAction = OutboundDeprovisionAction.DISCONNECT,
) -> SyncRule:
    return SyncRule(
        id=DIRECTORY_EXPORT_RULE_ID,
        name="People to directory users",
        connected_system_id=DIRECTORY_SYSTEM_ID,
        connected_system_object_type="user",
        metaverse_object_type="person",
        direction=SyncRuleDirection.EXPORT,
        provision_to_connected_system=provision,
        enforce_state=enforce_state,
        outbound_deprovision_action=deprovision_action,
        attribute_flow_rules=(
            flow("accountName", "EmployeeId"),
            flow("displayName", "DisplayName"),
            flow("department", "Department"),
        ),
        object_scoping_criteria_groups=scoping,
    )


def directory_import_rule() -> SyncRule:
    return SyncRule(
        id=DIRECTORY_IMPORT_RULE_ID,
        name="Directory users to people",
        connected_system_id=DIRECTORY_SYSTEM_ID,
        connected_system_object_type="user",
        metaverse_object_type="person",
        direction=SyncRuleDirection.IMPORT,
        attribute_flow_rules=(flow("EmployeeId", "accountName"),),
        object_matching_rules=(
            ObjectMatchingRule(source_attribute="accountName", target_attribute="EmployeeId"),
        ),
    )


def person_type(
    *,
    deletion_rule: DeletionRule = DeletionRule.MANUAL,
    grace_period: timedelta | None = None,
    trigger_system_ids: tuple[int, ...] = (),
) -> MetaverseObjectType:
    return MetaverseObjectType(
        name="person",
        attributes=PERSON_ATTRIBUTES,
        deletion_rule=deletion_rule,
        deletion_grace_period=grace_period,
        deletion_trigger_connected_system_ids=trigger_system_ids,
    )


def make_configuration(
    *,
    person: MetaverseObjectType | None = None,
    sync_rules: tuple[SyncRule, ...] | None = None,
    remove_contributed_attributes: bool = False,
) -> SyncConfiguration:
    employee_type = ConnectedSystemObjectType(
        name=EMPLOYEE.name,
        attributes=EMPLOYEE.attributes,
        remove_contributed_attributes_on_obsoletion=remove_contributed_attributes,
    )
    return SyncConfiguration(
        connected_systems=(
            ConnectedSystem(id=HR_SYSTEM_ID, name="HR", object_types=(employee_type,)),
            ConnectedSystem(
                id=DIRECTORY_SYSTEM_ID,
                name="Directory",
                object_types=(
                    ConnectedSystemObjectType(name="user", attributes=DIRECTORY_USER_ATTRIBUTES),
                ),
            ),
        ),
        metaverse_object_types=(person or person_type(),),
        sync_rules=sync_rules
        if sync_rules is not None
        else (hr_import_rule(), directory_export_rule(), directory_import_rule()),
    )


# Objects ----------------------------------------------------------------------


def text(attribute: str, value: ScalarValue, *, system_id: int | None = None) -> AttributeValue:
    return AttributeValue(
        attribute=attribute,
        data_type=AttributeDataType.TEXT,
        value=value,
        contributed_by_system_id=system_id,
    )


def reference(attribute: str, target: UUID, *, system_id: int | None = None) -> AttributeValue:
    return AttributeValue(
        attribute=attribute,
        data_type=AttributeDataType.REFERENCE,
        value=target,
        contributed_by_system_id=system_id,
    )


def employee(  # noqa: PLR0913
    employee_id: str,
    *,
    display_name: str | None = None,
    department: str | None = None,
    status: str | None = None,
    manager: UUID | None = None,
    groups: tuple[str, ...] = (),
    object_id: UUID | None = None,
    object_status: ConnectedSystemObjectStatus = ConnectedSystemObjectStatus.NORMAL,
    joined_to: MetaverseObject | None = None,
    created: datetime | None = None,
) -> ConnectedSystemObject:
    values = [text("employeeId", employee_id)]
    if display_name is not None:
        values.append(text("displayName", display_name))
    if department is not None:
        values.append(text("department", department))
    if status is not None:
        values.append(text("status", status))
    if manager is not None:
        values.append(reference("manager", manager))
    values.extend(text("groups", group) for group in groups)

    connected_system_object = ConnectedSystemObject(
        id=object_id or new_id(),
        connected_system_id=HR_SYSTEM_ID,
        type_id="employee",
        external_id_attribute="employeeId",
        status=object_status,
        attribute_values=values,
    )
    if created is not None:
        connected_system_object.created = created
    if joined_to is not None:
        connected_system_object.metaverse_object_id = joined_to.id
        connected_system_object.join_type = JoinType.PROJECTED
        connected_system_object.date_joined = joined_to.created
    return connected_system_object


def directory_user(
    account_name: str,
    *,
    display_name: str | None = None,
    department: str | None = None,
    joined_to: MetaverseObject | None = None,
    join_type: JoinType = JoinType.PROVISIONED,
    object_status: ConnectedSystemObjectStatus = ConnectedSystemObjectStatus.NORMAL,
) -> ConnectedSystemObject:
    values = [text("accountName", account_name)]
    if display_name is not None:
        values.append(text("displayName", display_name))
    if department is not None:
        values.append(text("department", department))
    connected_system_object = ConnectedSystemObject(
        connected_system_id=DIRECTORY_SYSTEM_ID,
        type_id="user",
        external_id_attribute="accountName",
        status=object_status,
        attribute_values=values,
    )
    if joined_to is not None:
        connected_system_object.metaverse_object_id = joined_to.id
        connected_system_object.join_type = join_type
        connected_system_object.date_joined = joined_to.created
    return connected_system_object


def person(
    employee_id: str,
    *,
    display_name: str | None = None,
    department: str | None = None,
    system_id: int | None = HR_SYSTEM_ID,
) -> MetaverseObject:
    values = [text("EmployeeId", employee_id, system_id=system_id)]
    if display_name is not None:
        values.append(text("DisplayName", display_name, system_id=system_id))
    if department is not None:
        values.append(text("Department", department, system_id=system_id))
    return MetaverseObject(id=new_id(), type="person", attribute_values=values)


def ordered_id(position: int) -> UUID:
    """Ids with a predictable sort order, for tests that depend on paging."""

    return UUID(int=position)
