"""Scope evaluation of objects against sync rule scoping criteria.

Top-level criteria groups are ORed: an object is in scope of a rule when any
group matches. Within a group, ``ALL`` requires every criterion and child
group to match and ``ANY`` requires one. An empty group matches everything.

Multi-valued attributes match a positive comparison (``EQUALS``,
``STARTS_WITH``...) when any value matches, and a negative comparison
(``NOT_EQUALS``...) only when no value matches its positive counterpart.
A missing attribute only satisfies ``EQUALS`` against ``None`` and
``NOT_EQUALS`` against a non-null value.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Final

from metasync.domain.model import (
    AttributeDataType,
    ComparisonType,
    InboundOutOfScopeAction,
    ScopingGroupType,
    convert_value,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from metasync.domain.model import (
        AttributeValue,
        ConnectedSystemObject,
        ScalarValue,
        ScopingCriteriaGroup,
        ScopingCriterion,
        SyncRule,
    )


log = logging.getLogger(__name__)

_NEGATIONS: Final[dict[ComparisonType, ComparisonType]] = {
    ComparisonType.NOT_EQUALS: ComparisonType.EQUALS,
    ComparisonType.NOT_STARTS_WITH: ComparisonType.STARTS_WITH,
    ComparisonType.NOT_ENDS_WITH: ComparisonType.ENDS_WITH,
    ComparisonType.NOT_CONTAINS: ComparisonType.CONTAINS,
}

_ORDERING: Final[frozenset[ComparisonType]] = frozenset(
    {
        ComparisonType.LESS_THAN,
        ComparisonType.LESS_THAN_OR_EQUALS,
        ComparisonType.GREATER_THAN,
        ComparisonType.GREATER_THAN_OR_EQUALS,
    }
)


def is_in_scope(
    values: Sequence[AttributeValue],
    groups: Sequence[ScopingCriteriaGroup],
) -> bool:
    if not groups:
        return True
    return any(
        group_matches(values, group) for group in sorted(groups, key=lambda item: item.position)
    )


def group_matches(values: Sequence[AttributeValue], group: ScopingCriteriaGroup) -> bool:
    results = [criterion_matches(values, criterion) for criterion in group.criteria]
    results.extend(
        group_matches(values, child)
        for child in sorted(group.child_groups, key=lambda item: item.position)
    )
    if not results:
        return True
    if group.type is ScopingGroupType.ALL:
        return all(results)
    return any(results)


def criterion_matches(values: Sequence[AttributeValue], criterion: ScopingCriterion) -> bool:
    candidates = [
        value.value
        for value in values
        if value.attribute == criterion.attribute and value.value is not None
    ]
    comparison = criterion.comparison

    if not candidates:
        if comparison is ComparisonType.EQUALS:
            return criterion.value is None
        if comparison is ComparisonType.NOT_EQUALS:
            return criterion.value is not None
        return False

    if criterion.value is None:
        return comparison is ComparisonType.NOT_EQUALS

    positive = _NEGATIONS.get(comparison)
    if positive is not None:
        return not any(_compare(candidate, positive, criterion) for candidate in candidates)
    return any(_compare(candidate, comparison, criterion) for candidate in candidates)


def _compare(  # noqa: PLR0911
    candidate: ScalarValue,
    comparison: ComparisonType,
    criterion: ScopingCriterion,
) -> bool:
    data_type = criterion.data_type
    try:
        actual = convert_value(candidate, data_type)
        expected = convert_value(criterion.value, data_type)
    except ValueError:
        log.debug(
            "Scoping value %r for %s is not a valid %s",
            candidate,
            criterion.attribute,
            data_type,
        )
        return False

    if data_type is AttributeDataType.TEXT:
        actual_text, expected_text = str(actual), str(expected)
        if not criterion.case_sensitive:
            actual_text, expected_text = actual_text.casefold(), expected_text.casefold()
        match comparison:
            case ComparisonType.EQUALS:
                return actual_text == expected_text
            case ComparisonType.STARTS_WITH:
                return actual_text.startswith(expected_text)
            case ComparisonType.ENDS_WITH:
                return actual_text.endswith(expected_text)
            case ComparisonType.CONTAINS:
                return expected_text in actual_text
            case _:
                return False

    if comparison is ComparisonType.EQUALS:
        return actual == expected

    if comparison in _ORDERING and data_type in {
        AttributeDataType.NUMBER,
        AttributeDataType.LONG_NUMBER,
        AttributeDataType.DATETIME,
    }:
        return _order(actual, comparison, expected)

    return False


def _order(actual: ScalarValue, comparison: ComparisonType, expected: ScalarValue) -> bool:
    if isinstance(actual, datetime) and isinstance(expected, datetime):
        left: float = actual.timestamp()
        right: float = expected.timestamp()
    elif isinstance(actual, int) and isinstance(expected, int):
        left, right = actual, expected
    else:
        return False
    match comparison:
        case ComparisonType.LESS_THAN:
            return left < right
        case ComparisonType.LESS_THAN_OR_EQUALS:
            return left <= right
        case ComparisonType.GREATER_THAN:
            return left > right
        case ComparisonType.GREATER_THAN_OR_EQUALS:
            return left >= right
        case _:
            return False


# Rule-level helpers -----------------------------------------------------------


def in_scope_import_rules(
    connected_system_object: ConnectedSystemObject,
    import_rules: Sequence[SyncRule],
) -> list[SyncRule]:
    """Return the rules whose scoping criteria the object satisfies.

    Rules without criteria are always in scope.
    """

    values = connected_system_object.effective_attribute_values()
    return [
        rule
        for rule in import_rules
        if not rule.has_scoping_criteria or is_in_scope(values, rule.object_scoping_criteria_groups)
    ]


def is_out_of_scope(import_rules: Sequence[SyncRule], in_scope_rules: Sequence[SyncRule]) -> bool:
    """An object is out of scope when no rule matched and some rule has criteria."""

    return not in_scope_rules and any(rule.has_scoping_criteria for rule in import_rules)


def out_of_scope_action(import_rules: Sequence[SyncRule]) -> InboundOutOfScopeAction:
    """Action for objects that fell out of scope: the first scoped rule decides."""

    for rule in import_rules:
        if rule.has_scoping_criteria:
            return rule.inbound_out_of_scope_action
    return InboundOutOfScopeAction.DISCONNECT


def obsolete_object_action(
    connected_system_object: ConnectedSystemObject,
    import_rules: Sequence[SyncRule],
) -> InboundOutOfScopeAction:
    """Action for obsolete objects: the first import rule for the object type decides."""

    for rule in import_rules:
        if rule.is_import and rule.connected_system_object_type == connected_system_object.type_id:
            return rule.inbound_out_of_scope_action
    return InboundOutOfScopeAction.DISCONNECT
