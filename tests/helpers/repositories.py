"""In-memory implementations of the persistence ports for engine tests."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Literal

from metasync.domain.model import new_id, scalar_equals
from metasync.domain.ports import SyncRepositories

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence
    from datetime import datetime
    from types import TracebackType
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


class FakeConnectedSystemObjectRepository:
    def __init__(self, objects: Iterable[ConnectedSystemObject] = ()) -> None:
        self.objects: dict[UUID, ConnectedSystemObject] = {item.id: item for item in objects}
        self.deleted: list[ConnectedSystemObject] = []

    def get(self, connected_system_object_id: UUID) -> ConnectedSystemObject | None:
        return self.objects.get(connected_system_object_id)

    def get_many(self, ids: Sequence[UUID]) -> list[ConnectedSystemObject]:
        return [self.objects[item] for item in ids if item in self.objects]

    def _matching(
        self,
        connected_system_id: int,
        modified_since: datetime | None,
    ) -> list[ConnectedSystemObject]:
        matches = [
            item
            for item in self.objects.values()
            if item.connected_system_id == connected_system_id
            and (modified_since is None or (item.last_updated or item.created) > modified_since)
        ]
        return sorted(matches, key=lambda item: item.id)

    def count(self, connected_system_id: int, *, modified_since: datetime | None = None) -> int:
        return len(self._matching(connected_system_id, modified_since))

    def page(
        self,
        connected_system_id: int,
        *,
        after_id: UUID | None,
        limit: int,
        modified_since: datetime | None = None,
    ) -> list[ConnectedSystemObject]:
        matches = [
            item
            for item in self._matching(connected_system_id, modified_since)
            if after_id is None or item.id > after_id
        ]
        return matches[:limit]

    def count_joined(
        self,
        metaverse_object_id: UUID,
        *,
        connected_system_id: int | None = None,
    ) -> int:
        return sum(
            1
            for item in self.for_metaverse_object(metaverse_object_id)
            if connected_system_id is None or item.connected_system_id == connected_system_id
        )

    def for_metaverse_object(self, metaverse_object_id: UUID) -> list[ConnectedSystemObject]:
        return [
            item
            for item in self.objects.values()
            if item.metaverse_object_id == metaverse_object_id
        ]

    def in_system(self, connected_system_id: int) -> list[ConnectedSystemObject]:
        return self._matching(connected_system_id, None)

    def add_many(self, objects: Sequence[ConnectedSystemObject]) -> None:
        for item in objects:
            self.objects[item.id] = item

    def update_many(self, objects: Sequence[ConnectedSystemObject]) -> None:
        for item in objects:
            self.objects[item.id] = item

    def delete_many(self, objects: Sequence[ConnectedSystemObject]) -> None:
        for item in objects:
            self.objects.pop(item.id, None)
            self.deleted.append(item)


class FakeMetaverseObjectRepository:
    def __init__(self, objects: Iterable[MetaverseObject] = ()) -> None:
        self.objects: dict[UUID, MetaverseObject] = {}
        for item in objects:
            if item.id is None:
                item.id = new_id()
            self.objects[item.id] = item
        self.deleted: list[MetaverseObject] = []

    def get(self, metaverse_object_id: UUID) -> MetaverseObject | None:
        return self.objects.get(metaverse_object_id)

    def get_many(self, ids: Sequence[UUID]) -> list[MetaverseObject]:
        return [self.objects[item] for item in ids if item in self.objects]

    def find_by_attribute(
        self,
        object_type: str,
        attribute: str,
        value: ScalarValue,
        *,
        case_sensitive: bool = True,
    ) -> list[MetaverseObject]:
        return [
            candidate
            for candidate in self.objects.values()
            if candidate.type == object_type
            and any(
                scalar_equals(stored.value, value, case_sensitive=case_sensitive)
                for stored in candidate.values_for(attribute)
            )
        ]

    def add_many(self, objects: Sequence[MetaverseObject]) -> None:
        for item in objects:
            if item.id is None:
                item.id = new_id()
            self.objects[item.id] = item

    def update_many(self, objects: Sequence[MetaverseObject]) -> None:
        for item in objects:
            assert item.id is not None
            self.objects[item.id] = item

    def delete(self, metaverse_object: MetaverseObject) -> None:
        assert metaverse_object.id is not None
        self.objects.pop(metaverse_object.id, None)
        self.deleted.append(metaverse_object)


class FakePendingExportRepository:
    def __init__(self, exports: Iterable[PendingExport] = ()) -> None:
        self.exports: list[PendingExport] = list(exports)
        self.updated: list[PendingExport] = []

    def for_connected_system(self, connected_system_id: int) -> list[PendingExport]:
        return [item for item in self.exports if item.connected_system_id == connected_system_id]

    def for_connected_system_object(self, connected_system_object_id: UUID) -> list[PendingExport]:
        return [
            item
            for item in self.exports
            if item.connected_system_object_id == connected_system_object_id
        ]

    def add_many(self, exports: Sequence[PendingExport]) -> None:
        self.exports.extend(exports)

    def update_many(self, exports: Sequence[PendingExport]) -> None:
        self.updated.extend(exports)

    def delete_many(self, exports: Sequence[PendingExport]) -> None:
        removed = {id(item) for item in exports}
        self.exports = [item for item in self.exports if id(item) not in removed]


class FakeActivityRepository:
    def __init__(self) -> None:
        self.activities: dict[UUID, Activity] = {}
        self.items: list[RunProfileExecutionItem] = []
        self.changes: list[MetaverseObjectChange] = []
        self.update_count = 0

    def add(self, activity: Activity) -> None:
        self.activities[activity.id] = activity

    def update(self, activity: Activity) -> None:
        self.activities[activity.id] = activity
        self.update_count += 1

    def get(self, activity_id: UUID) -> Activity | None:
        return self.activities.get(activity_id)

    def add_execution_items(self, items: Sequence[RunProfileExecutionItem]) -> None:
        self.items.extend(items)

    def execution_items(self, activity_id: UUID) -> list[RunProfileExecutionItem]:
        return [item for item in self.items if item.activity_id == activity_id]

    def add_metaverse_object_changes(self, changes: Sequence[MetaverseObjectChange]) -> None:
        self.changes.extend(changes)


class FakeSyncStateRepository:
    def __init__(self) -> None:
        self.watermarks: dict[int, datetime] = {}

    def get_watermark(self, connected_system_id: int) -> datetime | None:
        return self.watermarks.get(connected_system_id)

    def set_watermark(self, connected_system_id: int, completed_at: datetime) -> None:
        self.watermarks[connected_system_id] = completed_at


class FakeSyncUnitOfWork:
    """Unit of work over shared in-memory repositories; counts commits and rollbacks."""

    def __init__(
        self,
        *,
        connected_system_objects: Iterable[ConnectedSystemObject] = (),
        metaverse_objects: Iterable[MetaverseObject] = (),
        pending_exports: Iterable[PendingExport] = (),
    ) -> None:
        self.connected_system_objects = FakeConnectedSystemObjectRepository(
            connected_system_objects
        )
        self.metaverse_objects = FakeMetaverseObjectRepository(metaverse_objects)
        self.pending_exports = FakePendingExportRepository(pending_exports)
        self.activities = FakeActivityRepository()
        self.sync_state = FakeSyncStateRepository()
        self._repositories = SyncRepositories(
            connected_system_objects=self.connected_system_objects,
            metaverse_objects=self.metaverse_objects,
            pending_exports=self.pending_exports,
            activities=self.activities,
            sync_state=self.sync_state,
        )
        self.commits = 0
        self.rollbacks = 0
        self.savepoints = 0
        self.savepoint_rollbacks = 0

    @property
    def repositories(self) -> SyncRepositories:
        return self._repositories

    def __enter__(self) -> FakeSyncUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        return False

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """Counts savepoints; in-memory writes are not undone."""

        self.savepoints += 1
        try:
            yield
        except Exception:
            self.savepoint_rollbacks += 1
            raise
