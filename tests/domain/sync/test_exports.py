from __future__ import annotations

import pytest

from metasync.domain.model import (
    AttributeChangeType,
    ComparisonType,
    ConnectedSystemObject,
    ConnectedSystemObjectStatus,
    JoinType,
    MetaverseObject,
    OutboundDeprovisionAction,
    PendingExport,
    PendingExportAttributeValueChange,
    PendingExportChangeType,
    PendingExportStatus,
    ScopingCriteriaGroup,
    ScopingCriterion,
)
from metasync.domain.sync import RuleBasedExportEvaluator
from tests.helpers.repositories import (
    FakeConnectedSystemObjectRepository,
    FakePendingExportRepository,
)
from tests.helpers.sync import (
    DIRECTORY_SYSTEM_ID,
    HR_SYSTEM_ID,
    directory_export_rule,
    directory_user,
    employee,
    hr_import_rule,
    make_configuration,
    person,
)

ENGINEERING_ONLY = (
    ScopingCriteriaGroup(
        criteria=(
            ScopingCriterion(
                attribute="Department",
                comparison=ComparisonType.EQUALS,
                value="Engineering",
            ),
        ),
    ),
)


def _evaluator(
    *objects: ConnectedSystemObject,
    exports: tuple[PendingExport, ...] = (),
    deprovision_action: OutboundDeprovisionAction = OutboundDeprovisionAction.DISCONNECT,
    scoped: bool = False,
) -> RuleBasedExportEvaluator:
    configuration = make_configuration(
        sync_rules=(
            hr_import_rule(),
            directory_export_rule(
                scoping=ENGINEERING_ONLY if scoped else (),
                deprovision_action=deprovision_action,
            ),
        )
    )
    return RuleBasedExportEvaluator(
        configuration=configuration,
        connected_system_objects=FakeConnectedSystemObjectRepository(objects),
        pending_exports=FakePendingExportRepository(exports),
    )


def _summary(pending_export: PendingExport) -> list[tuple[str, AttributeChangeType, object]]:
    return [
        (change.attribute, change.change_type, change.value)
        for change in pending_export.attribute_value_changes
    ]


def test_provisions_missing_object_with_create_export() -> None:
    mvo = person("E1", display_name="Ada", department="Engineering")

    result = _evaluator().evaluate_export_rules(
        mvo, mvo.attribute_values, source_system_id=HR_SYSTEM_ID
    )

    [provisioned] = result.provisioning_objects
    assert provisioned.connected_system_id == DIRECTORY_SYSTEM_ID
    assert provisioned.status is ConnectedSystemObjectStatus.PENDING_PROVISIONING
    assert provisioned.join_type is JoinType.PROVISIONED
    assert provisioned.metaverse_object_id == mvo.id
    [create] = result.pending_exports_to_create
    assert create.change_type is PendingExportChangeType.CREATE
    assert create.connected_system_object_id == provisioned.id
    assert _summary(create) == [
        ("accountName", AttributeChangeType.UPDATE, "E1"),
        ("displayName", AttributeChangeType.UPDATE, "Ada"),
        ("department", AttributeChangeType.UPDATE, "Engineering"),
    ]


def test_changes_from_the_target_system_itself_are_not_exported() -> None:
    mvo = person("E1", display_name="Ada")

    result = _evaluator().evaluate_export_rules(
        mvo, mvo.attribute_values, source_system_id=DIRECTORY_SYSTEM_ID
    )

    assert result.is_empty


def test_stages_update_for_changed_attributes_only() -> None:
    mvo = person("E1", display_name="Ada", department="Engineering")
    user = directory_user("E1", display_name="Old", department="Sales", joined_to=mvo)
    changed = mvo.values_for("DisplayName")

    result = _evaluator(user).evaluate_export_rules(
        mvo, changed, source_system_id=HR_SYSTEM_ID
    )

    [update] = result.pending_exports_to_create
    assert update.change_type is PendingExportChangeType.UPDATE
    assert update.connected_system_object_id == user.id
    assert update.source_metaverse_object_id == mvo.id
    assert _summary(update) == [("displayName", AttributeChangeType.UPDATE, "Ada")]
    assert result.provisioning_objects == []


def test_values_already_on_the_object_are_no_net_change() -> None:
    mvo = person("E1", display_name="Ada")
    user = directory_user("E1", display_name="Ada", joined_to=mvo)

    result = _evaluator(user).evaluate_export_rules(
        mvo, mvo.values_for("DisplayName"), source_system_id=HR_SYSTEM_ID
    )

    assert result.is_empty
    assert result.no_net_change_count == 1


def test_merges_into_existing_pending_export() -> None:
    mvo = person("E1", display_name="Ada")
    user = directory_user("E1", display_name="Old", joined_to=mvo)
    existing = PendingExport(
        connected_system_id=DIRECTORY_SYSTEM_ID,
        connected_system_object_id=user.id,
        change_type=PendingExportChangeType.UPDATE,
        status=PendingExportStatus.PENDING,
        attribute_value_changes=[
            PendingExportAttributeValueChange(
                attribute="displayName",
                change_type=AttributeChangeType.UPDATE,
                value="Stale",
            ),
            PendingExportAttributeValueChange(
                attribute="department",
                change_type=AttributeChangeType.UPDATE,
                value="Sales",
            ),
        ],
    )

    result = _evaluator(user, exports=(existing,)).evaluate_export_rules(
        mvo, mvo.values_for("DisplayName"), source_system_id=HR_SYSTEM_ID
    )

    assert result.pending_exports_to_create == []
    assert result.pending_exports_to_update == [existing]
    assert _summary(existing) == [
        ("department", AttributeChangeType.UPDATE, "Sales"),
        ("displayName", AttributeChangeType.UPDATE, "Ada"),
    ]


def test_removed_source_value_exports_remove_all() -> None:
    mvo = person("E1", display_name="Ada")
    user = directory_user("E1", display_name="Ada", department="Sales", joined_to=mvo)
    removed = person("E1", department="Sales").values_for("Department")

    result = _evaluator(user).evaluate_export_rules(
        mvo, [], source_system_id=HR_SYSTEM_ID, removed_attributes=removed
    )

    [update] = result.pending_exports_to_create
    assert _summary(update) == [("department", AttributeChangeType.REMOVE_ALL, None)]


def test_objects_out_of_export_scope_are_not_provisioned() -> None:
    mvo = person("E1", display_name="Ada", department="Sales")

    result = _evaluator(scoped=True).evaluate_export_rules(
        mvo, mvo.attribute_values, source_system_id=HR_SYSTEM_ID
    )

    assert result.is_empty


@pytest.mark.parametrize(
    ("action", "expected_exports"),
    [
        (OutboundDeprovisionAction.DELETE, [PendingExportChangeType.DELETE]),
        (OutboundDeprovisionAction.DISCONNECT, []),
    ],
)
def test_leaving_export_scope_deprovisions(
    action: OutboundDeprovisionAction,
    expected_exports: list[PendingExportChangeType],
) -> None:
    mvo = person("E1", department="Sales")
    user = directory_user("E1", department="Engineering", joined_to=mvo)

    evaluator = _evaluator(user, deprovision_action=action, scoped=True)

    result = evaluator.evaluate_out_of_scope_exports(mvo, source_system_id=HR_SYSTEM_ID)

    assert [export.change_type for export in result.pending_exports_to_create] == expected_exports
    assert result.disconnected_objects == [user]
    assert not user.is_joined


def test_in_scope_object_is_not_deprovisioned() -> None:
    mvo = person("E1", department="Engineering")
    user = directory_user("E1", joined_to=mvo)

    result = _evaluator(user, scoped=True).evaluate_out_of_scope_exports(
        mvo, source_system_id=HR_SYSTEM_ID
    )

    assert result.is_empty
    assert user.is_joined


def test_metaverse_deletion_deletes_provisioned_objects_and_disconnects_all() -> None:
    mvo = person("E1")
    source = employee("E1", joined_to=mvo)
    user = directory_user("E1", joined_to=mvo)

    result = _evaluator(source, user).evaluate_mvo_deletion(mvo)

    [delete] = result.pending_exports_to_create
    assert delete.change_type is PendingExportChangeType.DELETE
    assert delete.connected_system_object_id == user.id
    assert set(map(id, result.disconnected_objects)) == {id(source), id(user)}
    assert not source.is_joined
    assert not user.is_joined


def test_unsaved_metaverse_object_cannot_be_evaluated() -> None:
    with pytest.raises(ValueError, match="must be persisted"):
        _evaluator().evaluate_export_rules(
            MetaverseObject(type="person"), [], source_system_id=HR_SYSTEM_ID
        )
