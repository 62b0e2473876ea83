"""Shared result types of the synchronisation stages.

This module intentionally holds only:
- the ``JoinOutcome`` sum type returned by the join resolver
- the deletion-rule decision
- the drift detection result
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

from metasync.domain.model import PendingExport

if TYPE_CHECKING:
    from metasync.domain.model import MetaverseObject, SyncRule


class JoinStatus(StrEnum):
    """Outcome of trying to join a connected system object to the metaverse."""

    JOINED = "joined"
    AMBIGUOUS_MATCH = "ambiguous_match"
    ALREADY_JOINED = "already_joined"
    NO_MATCH = "no_match"


@dataclass(slots=True, kw_only=True)
class Joined:
    """The object matched exactly one metaverse object and is now joined to it."""

    metaverse_object: MetaverseObject
    rule: SyncRule
    status: Literal[JoinStatus.JOINED] = JoinStatus.JOINED


@dataclass(slots=True, kw_only=True)
class AmbiguousMatch:
    """A matching rule found more than one candidate."""

    message: str
    candidate_count: int = 0
    status: Literal[JoinStatus.AMBIGUOUS_MATCH] = JoinStatus.AMBIGUOUS_MATCH


@dataclass(slots=True, kw_only=True)
class AlreadyJoined:
    """The candidate is already joined to another object of the same system."""

    metaverse_object: MetaverseObject
    message: str
    status: Literal[JoinStatus.ALREADY_JOINED] = JoinStatus.ALREADY_JOINED


@dataclass(slots=True, kw_only=True)
class NoMatch:
    """No matching rule produced a candidate."""

    status: Literal[JoinStatus.NO_MATCH] = JoinStatus.NO_MATCH


type JoinOutcome = Joined | AmbiguousMatch | AlreadyJoined | NoMatch


class DeletionDecision(StrEnum):
    """What the deletion rule decided for a metaverse object losing a connector."""

    NOT_ELIGIBLE = "not_eligible"
    PROTECTED = "protected"
    DELETE_NOW = "delete_now"
    MARK_FOR_DELETION = "mark_for_deletion"


@dataclass(slots=True, kw_only=True)
class DriftResult:
    """Attributes found drifted on one object and the exports staged to correct them."""

    drifted_attributes: list[str] = field(default_factory=list[str])
    corrective_exports: list[PendingExport] = field(default_factory=list[PendingExport])

    @property
    def has_drift(self) -> bool:
        return bool(self.drifted_attributes)
