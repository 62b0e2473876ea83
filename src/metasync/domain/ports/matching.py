"""Port for locating the metaverse object a connected system object should join."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from metasync.domain.model import ConnectedSystemObject, MetaverseObject, SyncRule


class MultipleMatchesError(Exception):
    """Raised by matchers when more than one metaverse object satisfies a rule."""

    def __init__(self, message: str, *, candidate_count: int) -> None:
        super().__init__(message)
        self.candidate_count = candidate_count


@runtime_checkable
class MetaverseObjectMatcher(Protocol):
    """Callable port returning the single matching MVO for ``rule`` (or None)."""

    def __call__(
        self,
        connected_system_object: ConnectedSystemObject,
        *,
        rule: SyncRule,
    ) -> MetaverseObject | None: ...


__all__ = ["MetaverseObjectMatcher", "MultipleMatchesError"]
