"""Transaction boundary used by the sync engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from contextlib import AbstractContextManager
    from types import TracebackType

    from metasync.domain.ports.persistence import (
        ActivityRepository,
        ConnectedSystemObjectRepository,
        MetaverseObjectRepository,
        PendingExportRepository,
        SyncStateRepository,
    )


@dataclass(slots=True)
class SyncRepositories:
    """Repositories required by a synchronisation run."""

    connected_system_objects: ConnectedSystemObjectRepository
    metaverse_objects: MetaverseObjectRepository
    pending_exports: PendingExportRepository
    activities: ActivityRepository
    sync_state: SyncStateRepository


@runtime_checkable
class SyncUnitOfWork(Protocol):
    """One transaction of a run: the run bookkeeping, or a single page.

    Nothing is written until ``commit``; leaving the context after an
    exception rolls back.
    """

    @property
    def repositories(self) -> SyncRepositories: ...

    def __enter__(self) -> SyncUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def savepoint(self) -> AbstractContextManager[object]:
        """Nested transaction: leaving it with an exception undoes only its writes."""
        ...
