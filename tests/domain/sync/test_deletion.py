from __future__ import annotations

from datetime import timedelta

import pytest

from metasync.domain.model import DeletionRule, MetaverseObjectOrigin
from metasync.domain.sync import DeletionDecision
from metasync.domain.sync.deletion import evaluate_deletion_rule
from tests.helpers.sync import DIRECTORY_SYSTEM_ID, HR_SYSTEM_ID, person, person_type


@pytest.mark.parametrize(
    ("rule", "remaining", "expected"),
    [
        (DeletionRule.MANUAL, 0, DeletionDecision.NOT_ELIGIBLE),
        (DeletionRule.WHEN_LAST_CONNECTOR_DISCONNECTED, 0, DeletionDecision.DELETE_NOW),
        (DeletionRule.WHEN_LAST_CONNECTOR_DISCONNECTED, 1, DeletionDecision.NOT_ELIGIBLE),
        (DeletionRule.WHEN_AUTHORITATIVE_SOURCE_DISCONNECTED, 0, DeletionDecision.DELETE_NOW),
        (DeletionRule.WHEN_AUTHORITATIVE_SOURCE_DISCONNECTED, 2, DeletionDecision.NOT_ELIGIBLE),
    ],
)
def test_deletion_rules(rule: DeletionRule, remaining: int, expected: DeletionDecision) -> None:
    decision = evaluate_deletion_rule(
        person("E1"),
        object_type=person_type(deletion_rule=rule),
        disconnecting_system_id=HR_SYSTEM_ID,
        remaining_join_count=remaining,
    )

    assert decision is expected


def test_authoritative_source_ignores_remaining_joins() -> None:
    object_type = person_type(
        deletion_rule=DeletionRule.WHEN_AUTHORITATIVE_SOURCE_DISCONNECTED,
        trigger_system_ids=(HR_SYSTEM_ID,),
    )

    from_hr = evaluate_deletion_rule(
        person("E1"),
        object_type=object_type,
        disconnecting_system_id=HR_SYSTEM_ID,
        remaining_join_count=3,
    )
    from_directory = evaluate_deletion_rule(
        person("E1"),
        object_type=object_type,
        disconnecting_system_id=DIRECTORY_SYSTEM_ID,
        remaining_join_count=0,
    )

    assert from_hr is DeletionDecision.DELETE_NOW
    assert from_directory is DeletionDecision.NOT_ELIGIBLE


def test_internal_objects_are_protected() -> None:
    mvo = person("E1")
    mvo.origin = MetaverseObjectOrigin.INTERNAL

    decision = evaluate_deletion_rule(
        mvo,
        object_type=person_type(deletion_rule=DeletionRule.WHEN_LAST_CONNECTOR_DISCONNECTED),
        disconnecting_system_id=HR_SYSTEM_ID,
        remaining_join_count=0,
    )

    assert decision is DeletionDecision.PROTECTED


def test_grace_period_marks_instead_of_deleting() -> None:
    decision = evaluate_deletion_rule(
        person("E1"),
        object_type=person_type(
            deletion_rule=DeletionRule.WHEN_LAST_CONNECTOR_DISCONNECTED,
            grace_period=timedelta(days=7),
        ),
        disconnecting_system_id=HR_SYSTEM_ID,
        remaining_join_count=0,
    )

    assert decision is DeletionDecision.MARK_FOR_DELETION


def test_zero_grace_period_deletes_now() -> None:
    decision = evaluate_deletion_rule(
        person("E1"),
        object_type=person_type(
            deletion_rule=DeletionRule.WHEN_LAST_CONNECTOR_DISCONNECTED,
            grace_period=timedelta(0),
        ),
        disconnecting_system_id=HR_SYSTEM_ID,
        remaining_join_count=0,
    )

    assert decision is DeletionDecision.DELETE_NOW
