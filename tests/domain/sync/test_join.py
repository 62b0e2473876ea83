from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

import pytest

from metasync.domain.model import JoinType, MetaverseObjectOrigin, ObjectMatchingRule
from metasync.domain.ports import MultipleMatchesError
from metasync.domain.sync import AlreadyJoined, AmbiguousMatch, AttributeMatcher, Joined, NoMatch
from metasync.domain.sync.join import attempt_join, attempt_projection
from tests.helpers.repositories import (
    FakeConnectedSystemObjectRepository,
    FakeMetaverseObjectRepository,
)
from tests.helpers.sync import employee, hr_import_rule, person

JOINED_AT = datetime(2024, 3, 1, tzinfo=UTC)


def test_matcher_finds_single_candidate() -> None:
    mvo = person("E1")
    matcher = AttributeMatcher(FakeMetaverseObjectRepository([mvo, person("E2")]))

    assert matcher(employee("E1"), rule=hr_import_rule()) is mvo
    assert matcher(employee("E3"), rule=hr_import_rule()) is None


def test_matcher_raises_on_multiple_candidates() -> None:
    matcher = AttributeMatcher(FakeMetaverseObjectRepository([person("E1"), person("E1")]))

    with pytest.raises(MultipleMatchesError) as excinfo:
        matcher(employee("E1"), rule=hr_import_rule())

    assert excinfo.value.candidate_count == 2


def test_matcher_tries_matching_rules_in_order() -> None:
    by_name = person("E9", display_name="Ada")
    rule = replace(
        hr_import_rule(),
        object_matching_rules=(
            ObjectMatchingRule(
                order=1,
                source_attribute="employeeId",
                target_attribute="EmployeeId",
            ),
            ObjectMatchingRule(
                order=0,
                source_attribute="displayName",
                target_attribute="DisplayName",
                case_sensitive=False,
            ),
        ),
    )
    matcher = AttributeMatcher(FakeMetaverseObjectRepository([by_name, person("E1")]))

    assert matcher(employee("E1", display_name="ADA"), rule=rule) is by_name


def test_attempt_join_joins_and_clears_deletion_marker() -> None:
    mvo = person("E1")
    mvo.mark_disconnected(at=JOINED_AT)
    cso = employee("E1")
    repository = FakeConnectedSystemObjectRepository([cso])

    outcome = attempt_join(
        cso,
        [hr_import_rule()],
        matcher=AttributeMatcher(FakeMetaverseObjectRepository([mvo])),
        connected_system_objects=repository,
        joined_at=JOINED_AT,
    )

    assert isinstance(outcome, Joined)
    assert outcome.metaverse_object is mvo
    assert cso.metaverse_object_id == mvo.id
    assert cso.join_type is JoinType.JOINED
    assert cso.date_joined == JOINED_AT
    assert mvo.last_connector_disconnected_date is None


def test_attempt_join_refuses_second_join_from_same_system() -> None:
    mvo = person("E1")
    existing = employee("E1", joined_to=mvo)
    cso = employee("E1")
    repository = FakeConnectedSystemObjectRepository([existing, cso])

    outcome = attempt_join(
        cso,
        [hr_import_rule()],
        matcher=AttributeMatcher(FakeMetaverseObjectRepository([mvo])),
        connected_system_objects=repository,
        joined_at=JOINED_AT,
    )

    assert isinstance(outcome, AlreadyJoined)
    assert not cso.is_joined


def test_attempt_join_counts_page_local_joins_and_disconnects() -> None:
    mvo = person("E1")
    assert mvo.id is not None
    previous = employee("E1", joined_to=mvo)
    cso = employee("E1")
    matcher = AttributeMatcher(FakeMetaverseObjectRepository([mvo]))

    freed = attempt_join(
        cso,
        [hr_import_rule()],
        matcher=matcher,
        connected_system_objects=FakeConnectedSystemObjectRepository([previous, cso]),
        joined_at=JOINED_AT,
        pending_disconnected_mvo_ids=[mvo.id],
    )
    taken = attempt_join(
        employee("E1"),
        [hr_import_rule()],
        matcher=matcher,
        connected_system_objects=FakeConnectedSystemObjectRepository(),
        joined_at=JOINED_AT,
        joined_in_page=[mvo.id],
    )

    assert isinstance(freed, Joined)
    assert isinstance(taken, AlreadyJoined)


def test_attempt_join_reports_ambiguous_match() -> None:
    outcome = attempt_join(
        employee("E1"),
        [hr_import_rule()],
        matcher=AttributeMatcher(FakeMetaverseObjectRepository([person("E1"), person("E1")])),
        connected_system_objects=FakeConnectedSystemObjectRepository(),
        joined_at=JOINED_AT,
    )

    assert isinstance(outcome, AmbiguousMatch)
    assert outcome.candidate_count == 2


def test_attempt_join_skips_rules_without_matching_rules() -> None:
    rule = replace(hr_import_rule(), object_matching_rules=())

    outcome = attempt_join(
        employee("E1"),
        [rule],
        matcher=AttributeMatcher(FakeMetaverseObjectRepository([person("E1")])),
        connected_system_objects=FakeConnectedSystemObjectRepository(),
        joined_at=JOINED_AT,
    )

    assert isinstance(outcome, NoMatch)


def test_projection_creates_unsaved_metaverse_object() -> None:
    cso = employee("E1")

    mvo = attempt_projection(cso, [hr_import_rule()], joined_at=JOINED_AT)

    assert mvo is not None
    assert mvo.id is None
    assert mvo.type == "person"
    assert mvo.origin is MetaverseObjectOrigin.PROJECTED
    assert cso.join_type is JoinType.PROJECTED
    assert cso.metaverse_object_id is None


def test_projection_requires_a_projecting_rule() -> None:
    cso = employee("E1")

    assert attempt_projection(cso, [hr_import_rule(project=False)], joined_at=JOINED_AT) is None
    assert cso.join_type is JoinType.NOT_JOINED
