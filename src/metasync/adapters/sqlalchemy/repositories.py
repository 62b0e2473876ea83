"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, cast

from sqlalchemy import Text, func, insert, inspect, select, type_coerce, update
from sqlalchemy.orm.attributes import flag_modified

from metasync.adapters.sqlalchemy.mappings import (
    connected_system_object_table,
    connected_system_state_table,
    metaverse_object_table,
    pending_export_table,
    run_profile_execution_item_table,
)
from metasync.domain.model import (
    Activity,
    ConnectedSystemObject,
    MetaverseObject,
    PendingExport,
    RunProfileExecutionItem,
    new_id,
    scalar_equals,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy import ColumnElement
    from sqlalchemy.orm import Session

    from metasync.domain.model import MetaverseObjectChange, ScalarValue


_ATTRIBUTE_COLUMNS = (
    "attribute_values",
    "pending_attribute_value_additions",
    "pending_attribute_value_removals",
)


def _flag_attribute_values(entity: ConnectedSystemObject | MetaverseObject) -> None:
    # value lists are mutated in place by the engine; expired ones reload as stored
    unloaded = inspect(entity).unloaded
    for name in _ATTRIBUTE_COLUMNS:
        if name not in unloaded:
            flag_modified(entity, name)


def _modified_since(since: datetime) -> ColumnElement[bool]:
    table = connected_system_object_table
    return func.coalesce(table.c.last_updated, table.c.created) > since


class SqlAlchemyConnectedSystemObjectRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, connected_system_object_id: UUID) -> ConnectedSystemObject | None:
        return self.session.get(ConnectedSystemObject, connected_system_object_id)

    def get_many(self, ids: Sequence[UUID]) -> list[ConnectedSystemObject]:
        if not ids:
            return []
        stmt = (
            select(ConnectedSystemObject)
            .where(connected_system_object_table.c.id.in_(list(ids)))
            .order_by(connected_system_object_table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def count(self, connected_system_id: int, *, modified_since: datetime | None = None) -> int:
        table = connected_system_object_table
        stmt = select(func.count()).where(table.c.connected_system_id == connected_system_id)
        if modified_since is not None:
            stmt = stmt.where(_modified_since(modified_since))
        return int(self.session.execute(stmt).scalar_one())

    def page(
        self,
        connected_system_id: int,
        *,
        after_id: UUID | None,
        limit: int,
        modified_since: datetime | None = None,
    ) -> list[ConnectedSystemObject]:
        table = connected_system_object_table
        stmt = select(ConnectedSystemObject).where(
            table.c.connected_system_id == connected_system_id
        )
        if after_id is not None:
            stmt = stmt.where(table.c.id > after_id)
        if modified_since is not None:
            stmt = stmt.where(_modified_since(modified_since))
        stmt = stmt.order_by(table.c.id).limit(limit)
        return list(self.session.execute(stmt).scalars())

    def count_joined(
        self,
        metaverse_object_id: UUID,
        *,
        connected_system_id: int | None = None,
    ) -> int:
        table = connected_system_object_table
        stmt = select(func.count()).where(table.c.metaverse_object_id == metaverse_object_id)
        if connected_system_id is not None:
            stmt = stmt.where(table.c.connected_system_id == connected_system_id)
        return int(self.session.execute(stmt).scalar_one())

    def for_metaverse_object(self, metaverse_object_id: UUID) -> list[ConnectedSystemObject]:
        table = connected_system_object_table
        stmt = (
            select(ConnectedSystemObject)
            .where(table.c.metaverse_object_id == metaverse_object_id)
            .order_by(table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def add_many(self, objects: Sequence[ConnectedSystemObject]) -> None:
        self.session.add_all(objects)
        self.session.flush()

    def update_many(self, objects: Sequence[ConnectedSystemObject]) -> None:
        for connected_system_object in objects:
            self.session.add(connected_system_object)
            _flag_attribute_values(connected_system_object)
        self.session.flush()

    def delete_many(self, objects: Sequence[ConnectedSystemObject]) -> None:
        for connected_system_object in objects:
            self.session.delete(connected_system_object)
        self.session.flush()


class SqlAlchemyMetaverseObjectRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, metaverse_object_id: UUID) -> MetaverseObject | None:
        return self.session.get(MetaverseObject, metaverse_object_id)

    def get_many(self, ids: Sequence[UUID]) -> list[MetaverseObject]:
        if not ids:
            return []
        stmt = select(MetaverseObject).where(metaverse_object_table.c.id.in_(list(ids)))
        return list(self.session.execute(stmt).scalars())

    def find_by_attribute(
        self,
        object_type: str,
        attribute: str,
        value: ScalarValue,
        *,
        case_sensitive: bool = True,
    ) -> list[MetaverseObject]:
        """Return objects of ``object_type`` holding ``value`` for ``attribute``.

        Values live in a JSON column, so the database only narrows candidates
        down to objects mentioning the attribute; the comparison itself runs
        here.
        """

        table = metaverse_object_table
        marker = json.dumps({"attribute": attribute}, ensure_ascii=False)[1:-1]
        stmt = (
            select(MetaverseObject)
            .where(table.c.type == object_type)
            .where(type_coerce(table.c.attribute_values, Text).contains(marker, autoescape=True))
            .order_by(table.c.id)
        )
        return [
            candidate
            for candidate in self.session.execute(stmt).scalars()
            if any(
                scalar_equals(stored.value, value, case_sensitive=case_sensitive)
                for stored in candidate.values_for(attribute)
            )
        ]

    def add_many(self, objects: Sequence[MetaverseObject]) -> None:
        for metaverse_object in objects:
            if metaverse_object.id is None:
                metaverse_object.id = new_id()
        self.session.add_all(objects)
        self.session.flush()

    def update_many(self, objects: Sequence[MetaverseObject]) -> None:
        for metaverse_object in objects:
            self.session.add(metaverse_object)
            _flag_attribute_values(metaverse_object)
        self.session.flush()

    def delete(self, metaverse_object: MetaverseObject) -> None:
        self.session.delete(metaverse_object)
        self.session.flush()


class SqlAlchemyPendingExportRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def for_connected_system(self, connected_system_id: int) -> list[PendingExport]:
        table = pending_export_table
        stmt = (
            select(PendingExport)
            .where(table.c.connected_system_id == connected_system_id)
            .order_by(table.c.created_at, table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def for_connected_system_object(self, connected_system_object_id: UUID) -> list[PendingExport]:
        table = pending_export_table
        stmt = (
            select(PendingExport)
            .where(table.c.connected_system_object_id == connected_system_object_id)
            .order_by(table.c.created_at, table.c.id)
        )
        return list(self.session.execute(stmt).scalars())

    def add_many(self, exports: Sequence[PendingExport]) -> None:
        self.session.add_all(exports)
        self.session.flush()

    def update_many(self, exports: Sequence[PendingExport]) -> None:
        for pending_export in exports:
            self.session.add(pending_export)
            flag_modified(pending_export, "attribute_value_changes")
        self.session.flush()

    def delete_many(self, exports: Sequence[PendingExport]) -> None:
        for pending_export in exports:
            self.session.delete(pending_export)
        self.session.flush()


class SqlAlchemyActivityRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, activity: Activity) -> None:
        self.session.add(activity)
        self.session.flush()

    def update(self, activity: Activity) -> None:
        self.session.add(activity)
        flag_modified(activity, "summary")
        self.session.flush()

    def get(self, activity_id: UUID) -> Activity | None:
        return self.session.get(Activity, activity_id)

    def add_execution_items(self, items: Sequence[RunProfileExecutionItem]) -> None:
        self.session.add_all(items)
        self.session.flush()

    def execution_items(self, activity_id: UUID) -> list[RunProfileExecutionItem]:
        table = run_profile_execution_item_table
        stmt = (
            select(RunProfileExecutionItem)
            .where(table.c.activity_id == activity_id)
            .order_by(table.c.created_at)
        )
        return list(self.session.execute(stmt).scalars())

    def add_metaverse_object_changes(self, changes: Sequence[MetaverseObjectChange]) -> None:
        self.session.add_all(changes)
        self.session.flush()


class SqlAlchemySyncStateRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_watermark(self, connected_system_id: int) -> datetime | None:
        table = connected_system_state_table
        stmt = select(table.c.last_delta_sync_completed_at).where(
            table.c.connected_system_id == connected_system_id
        )
        return cast("datetime | None", self.session.execute(stmt).scalar_one_or_none())

    def set_watermark(self, connected_system_id: int, completed_at: datetime) -> None:
        table = connected_system_state_table
        result = self.session.execute(
            update(table)
            .where(table.c.connected_system_id == connected_system_id)
            .values(last_delta_sync_completed_at=completed_at)
        )
        if not result.rowcount:  # pyright: ignore[reportAttributeAccessIssue]
            self.session.execute(
                insert(table).values(
                    connected_system_id=connected_system_id,
                    last_delta_sync_completed_at=completed_at,
                )
            )


if TYPE_CHECKING:
    from metasync.domain.ports import (
        ActivityRepository,
        ConnectedSystemObjectRepository,
        MetaverseObjectRepository,
        PendingExportRepository,
        SyncStateRepository,
    )

    _cso_check: ConnectedSystemObjectRepository = SqlAlchemyConnectedSystemObjectRepository(
        cast("Session", None)
    )
    _mvo_check: MetaverseObjectRepository = SqlAlchemyMetaverseObjectRepository(
        cast("Session", None)
    )
    _pe_check: PendingExportRepository = SqlAlchemyPendingExportRepository(cast("Session", None))
    _activity_check: ActivityRepository = SqlAlchemyActivityRepository(cast("Session", None))
    _state_check: SyncStateRepository = SqlAlchemySyncStateRepository(cast("Session", None))
