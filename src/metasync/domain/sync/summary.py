"""Roll execution items up into the activity summary and final status."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from metasync.domain.model import ActivityStatus, ActivitySummary, ObjectChangeType

if TYPE_CHECKING:
    from collections.abc import Sequence

    from metasync.domain.model import RunProfileExecutionItem


_CREATES = frozenset({ObjectChangeType.PROJECTED, ObjectChangeType.ADDED})
_UPDATES = frozenset(
    {
        ObjectChangeType.JOINED,
        ObjectChangeType.UPDATED,
        ObjectChangeType.DISCONNECTED,
        ObjectChangeType.DISCONNECTED_OUT_OF_SCOPE,
        ObjectChangeType.DRIFT_CORRECTION,
    }
)


def summarize(items: Sequence[RunProfileExecutionItem]) -> ActivitySummary:
    by_change_type = Counter(item.object_change_type for item in items)
    return ActivitySummary(
        total=len(items),
        creates=sum(by_change_type[change_type] for change_type in _CREATES),
        updates=sum(by_change_type[change_type] for change_type in _UPDATES),
        flows=by_change_type[ObjectChangeType.ATTRIBUTE_FLOW],
        deletes=by_change_type[ObjectChangeType.DELETED],
        errors=sum(1 for item in items if item.has_error),
        by_change_type=dict(by_change_type),
    )


def completion_status(items: Sequence[RunProfileExecutionItem]) -> ActivityStatus:
    """Status of a run that was neither cancelled nor aborted.

    Every item errored: failed. Some errored: complete with warnings.
    """

    errors = sum(1 for item in items if item.has_error)
    if not errors:
        return ActivityStatus.COMPLETE
    if errors == len(items):
        return ActivityStatus.FAILED
    return ActivityStatus.COMPLETE_WITH_WARNING
