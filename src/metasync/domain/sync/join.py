"""Join and projection of unjoined connected system objects.

Responsibilities of this stage:
- find at most one metaverse object for a CSO through the matching port
  (first import rule with a match wins)
- enforce that an MVO is joined to at most one CSO per connected system,
  counting joins that are staged in the current page but not yet flushed
- project a new, id-less MVO when nothing matched and a rule projects

Expected failures come back as ``JoinOutcome`` values, never as exceptions.
Attribute flow onto the joined or projected MVO is a separate step.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from metasync.domain.model import JoinType, MetaverseObject, MetaverseObjectOrigin
from metasync.domain.ports import MultipleMatchesError

from .contracts import AlreadyJoined, AmbiguousMatch, Joined, NoMatch

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from metasync.domain.model import ConnectedSystemObject, SyncRule
    from metasync.domain.ports import ConnectedSystemObjectRepository, MetaverseObjectMatcher

    from .contracts import JoinOutcome


log = logging.getLogger(__name__)


def attempt_join(
    connected_system_object: ConnectedSystemObject,
    import_rules: Sequence[SyncRule],
    *,
    matcher: MetaverseObjectMatcher,
    connected_system_objects: ConnectedSystemObjectRepository,
    joined_at: datetime,
    pending_disconnected_mvo_ids: Sequence[UUID] = (),
    joined_in_page: Sequence[UUID] = (),
) -> JoinOutcome:
    """Try each rule's matching rules and join the CSO to the first match.

    ``pending_disconnected_mvo_ids`` lists MVOs disconnected from this system
    earlier in the page; ``joined_in_page`` lists MVOs joined earlier in the
    page. Neither is visible to storage yet.
    """

    for rule in import_rules:
        if not rule.object_matching_rules:
            continue
        try:
            candidate = matcher(connected_system_object, rule=rule)
        except MultipleMatchesError as exc:
            log.info("Ambiguous match for %s: %s", connected_system_object, exc)
            return AmbiguousMatch(message=str(exc), candidate_count=exc.candidate_count)
        if candidate is None:
            continue

        if candidate.id is not None:
            existing = (
                connected_system_objects.count_joined(
                    candidate.id,
                    connected_system_id=connected_system_object.connected_system_id,
                )
                - pending_disconnected_mvo_ids.count(candidate.id)
                + joined_in_page.count(candidate.id)
            )
            if existing > 0:
                return AlreadyJoined(
                    metaverse_object=candidate,
                    message=(
                        f"{candidate} is already joined to an object in connected system "
                        f"{connected_system_object.connected_system_id}"
                    ),
                )

        connected_system_object.join_to(
            candidate.id,
            join_type=JoinType.JOINED,
            joined_at=joined_at,
        )
        candidate.clear_deletion_marker()
        return Joined(metaverse_object=candidate, rule=rule)

    return NoMatch()


def attempt_projection(
    connected_system_object: ConnectedSystemObject,
    import_rules: Sequence[SyncRule],
    *,
    joined_at: datetime,
) -> MetaverseObject | None:
    """Create a new MVO from the first rule that projects, or return None.

    The MVO has no id until its batch is persisted, so the CSO is marked
    projected without a ``metaverse_object_id`` until the page is flushed.
    """

    for rule in import_rules:
        if not rule.project_to_metaverse:
            continue
        metaverse_object = MetaverseObject(
            type=rule.metaverse_object_type,
            origin=MetaverseObjectOrigin.PROJECTED,
        )
        connected_system_object.join_to(
            None,
            join_type=JoinType.PROJECTED,
            joined_at=joined_at,
        )
        log.debug("Projected %s via rule %s", connected_system_object, rule.name)
        return metaverse_object
    return None
