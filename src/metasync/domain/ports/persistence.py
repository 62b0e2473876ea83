"""Ports for persisting synchronisation state.

Writes are batched per entity collection; the engine decides the order in
which batches are submitted, the adapter decides how each batch is applied.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from metasync.domain.model import (
        Activity,
        ConnectedSystemObject,
        MetaverseObject,
        MetaverseObjectChange,
        PendingExport,
        RunProfileExecutionItem,
        ScalarValue,
    )


@runtime_checkable
class ConnectedSystemObjectRepository(Protocol):
    """Persistence contract for connected system objects."""

    def get(self, connected_system_object_id: UUID) -> ConnectedSystemObject | None: ...

    def get_many(self, ids: Sequence[UUID]) -> list[ConnectedSystemObject]: ...

    def count(self, connected_system_id: int, *, modified_since: datetime | None = None) -> int:
        ...

    def page(
        self,
        connected_system_id: int,
        *,
        after_id: UUID | None,
        limit: int,
        modified_since: datetime | None = None,
    ) -> list[ConnectedSystemObject]:
        """Return the next ``limit`` objects ordered by id, starting after ``after_id``."""
        ...

    def count_joined(
        self,
        metaverse_object_id: UUID,
        *,
        connected_system_id: int | None = None,
    ) -> int: ...

    def for_metaverse_object(self, metaverse_object_id: UUID) -> list[ConnectedSystemObject]: ...

    def add_many(self, objects: Sequence[ConnectedSystemObject]) -> None: ...

    def update_many(self, objects: Sequence[ConnectedSystemObject]) -> None: ...

    def delete_many(self, objects: Sequence[ConnectedSystemObject]) -> None: ...


@runtime_checkable
class MetaverseObjectRepository(Protocol):
    """Persistence contract for metaverse objects."""

    def get(self, metaverse_object_id: UUID) -> MetaverseObject | None: ...

    def get_many(self, ids: Sequence[UUID]) -> list[MetaverseObject]: ...

    def find_by_attribute(
        self,
        object_type: str,
        attribute: str,
        value: ScalarValue,
        *,
        case_sensitive: bool = True,
    ) -> list[MetaverseObject]: ...

    def add_many(self, objects: Sequence[MetaverseObject]) -> None:
        """Persist new objects, assigning an id to each one."""
        ...

    def update_many(self, objects: Sequence[MetaverseObject]) -> None: ...

    def delete(self, metaverse_object: MetaverseObject) -> None: ...


@runtime_checkable
class PendingExportRepository(Protocol):
    """Persistence contract for pending exports."""

    def for_connected_system(self, connected_system_id: int) -> list[PendingExport]: ...

    def for_connected_system_object(self, connected_system_object_id: UUID) -> list[PendingExport]:
        ...

    def add_many(self, exports: Sequence[PendingExport]) -> None: ...

    def update_many(self, exports: Sequence[PendingExport]) -> None: ...

    def delete_many(self, exports: Sequence[PendingExport]) -> None: ...


@runtime_checkable
class ActivityRepository(Protocol):
    """Persistence contract for activities and their audit records."""

    def add(self, activity: Activity) -> None: ...

    def update(self, activity: Activity) -> None: ...

    def get(self, activity_id: UUID) -> Activity | None: ...

    def add_execution_items(self, items: Sequence[RunProfileExecutionItem]) -> None: ...

    def execution_items(self, activity_id: UUID) -> list[RunProfileExecutionItem]: ...

    def add_metaverse_object_changes(self, changes: Sequence[MetaverseObjectChange]) -> None: ...


@runtime_checkable
class SyncStateRepository(Protocol):
    """Per connected system watermark storage."""

    def get_watermark(self, connected_system_id: int) -> datetime | None: ...

    def set_watermark(self, connected_system_id: int, completed_at: datetime) -> None: ...
