"""Deletion rules applied when a metaverse object loses a connector."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from metasync.domain.model import DeletionRule, MetaverseObjectOrigin

from .contracts import DeletionDecision

if TYPE_CHECKING:
    from metasync.domain.model import MetaverseObject, MetaverseObjectType


def evaluate_deletion_rule(
    metaverse_object: MetaverseObject,
    *,
    object_type: MetaverseObjectType,
    disconnecting_system_id: int,
    remaining_join_count: int,
) -> DeletionDecision:
    """Decide what happens to ``metaverse_object`` after a disconnect.

    - ``MANUAL`` never deletes automatically
    - internal objects are protected from automatic deletion
    - ``WHEN_LAST_CONNECTOR_DISCONNECTED`` needs zero remaining joins
    - ``WHEN_AUTHORITATIVE_SOURCE_DISCONNECTED`` deletes when the disconnecting
      system is a trigger system; without trigger systems it behaves like
      last-connector
    - eligible objects are deleted now when there is no grace period,
      otherwise marked for later housekeeping
    """

    if object_type.deletion_rule is DeletionRule.MANUAL:
        return DeletionDecision.NOT_ELIGIBLE
    if metaverse_object.origin is MetaverseObjectOrigin.INTERNAL:
        return DeletionDecision.PROTECTED

    if (
        object_type.deletion_rule is DeletionRule.WHEN_AUTHORITATIVE_SOURCE_DISCONNECTED
        and object_type.deletion_trigger_connected_system_ids
    ):
        eligible = disconnecting_system_id in object_type.deletion_trigger_connected_system_ids
    else:
        eligible = remaining_join_count <= 0

    if not eligible:
        return DeletionDecision.NOT_ELIGIBLE

    grace_period = object_type.deletion_grace_period
    if grace_period is None or grace_period <= timedelta(0):
        return DeletionDecision.DELETE_NOW
    return DeletionDecision.MARK_FOR_DELETION
