"""Tests for SQLAlchemy repositories."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session  # noqa: TC002

from metasync.adapters.sqlalchemy.repositories import (
    SqlAlchemyActivityRepository,
    SqlAlchemyConnectedSystemObjectRepository,
    SqlAlchemyMetaverseObjectRepository,
    SqlAlchemyPendingExportRepository,
    SqlAlchemySyncStateRepository,
)
from metasync.domain.model import (
    Activity,
    MetaverseObject,
    ObjectChangeType,
    PendingExport,
    PendingExportChangeType,
)
from tests.helpers.sync import (
    DIRECTORY_SYSTEM_ID,
    HR_SYSTEM_ID,
    directory_user,
    employee,
    ordered_id,
    person,
    text,
)

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


def test_connected_system_objects_page_by_id(sqlite_session: Session) -> None:
    repository = SqlAlchemyConnectedSystemObjectRepository(sqlite_session)
    repository.add_many(
        [
            employee("E3", object_id=ordered_id(3)),
            employee("E1", object_id=ordered_id(1)),
            employee("E2", object_id=ordered_id(2)),
            directory_user("E1"),
        ]
    )
    sqlite_session.commit()

    first = repository.page(HR_SYSTEM_ID, after_id=None, limit=2)
    second = repository.page(HR_SYSTEM_ID, after_id=first[-1].id, limit=2)

    assert repository.count(HR_SYSTEM_ID) == 3
    assert [item.id for item in first] == [ordered_id(1), ordered_id(2)]
    assert [item.id for item in second] == [ordered_id(3)]
    assert repository.count(DIRECTORY_SYSTEM_ID) == 1


def test_connected_system_objects_modified_since(sqlite_session: Session) -> None:
    repository = SqlAlchemyConnectedSystemObjectRepository(sqlite_session)
    old = employee("E1", created=BASE_TIME - timedelta(days=10))
    touched = employee("E2", created=BASE_TIME - timedelta(days=10))
    touched.last_updated = BASE_TIME + timedelta(hours=1)
    new = employee("E3", created=BASE_TIME + timedelta(days=1))
    repository.add_many([old, touched, new])
    sqlite_session.commit()

    changed = repository.page(HR_SYSTEM_ID, after_id=None, limit=10, modified_since=BASE_TIME)

    assert repository.count(HR_SYSTEM_ID, modified_since=BASE_TIME) == 2
    assert {item.id for item in changed} == {touched.id, new.id}


def test_join_queries(sqlite_session: Session) -> None:
    metaverse_objects = SqlAlchemyMetaverseObjectRepository(sqlite_session)
    connected_system_objects = SqlAlchemyConnectedSystemObjectRepository(sqlite_session)
    mvo = person("E1")
    metaverse_objects.add_many([mvo])
    source = employee("E1", joined_to=mvo)
    account = directory_user("E1", joined_to=mvo)
    connected_system_objects.add_many([source, account, employee("E2")])
    sqlite_session.commit()

    assert mvo.id is not None
    assert connected_system_objects.count_joined(mvo.id) == 2
    assert connected_system_objects.count_joined(mvo.id, connected_system_id=HR_SYSTEM_ID) == 1
    assert {item.id for item in connected_system_objects.for_metaverse_object(mvo.id)} == {
        source.id,
        account.id,
    }


def test_find_by_attribute_compares_values(sqlite_session: Session) -> None:
    repository = SqlAlchemyMetaverseObjectRepository(sqlite_session)
    ada = person("E1", display_name="Ada Lovelace")
    other = person("E2", display_name="Grace Hopper")
    no_name = MetaverseObject(type="person", attribute_values=[text("EmployeeId", "E3")])
    group = MetaverseObject(type="group", attribute_values=[text("DisplayName", "Ada Lovelace")])
    repository.add_many([ada, other, no_name, group])
    sqlite_session.commit()

    exact = repository.find_by_attribute("person", "DisplayName", "Ada Lovelace")
    folded = repository.find_by_attribute(
        "person", "DisplayName", "ADA LOVELACE", case_sensitive=False
    )

    assert exact == [ada]
    assert folded == [ada]
    assert repository.find_by_attribute("person", "DisplayName", "ADA LOVELACE") == []


def test_metaverse_object_updates_persist_in_place_mutations(sqlite_session: Session) -> None:
    repository = SqlAlchemyMetaverseObjectRepository(sqlite_session)
    mvo = person("E1", display_name="Ada")
    repository.add_many([mvo])
    sqlite_session.commit()

    mvo.attribute_values.append(text("Department", "Engineering"))
    repository.update_many([mvo])
    sqlite_session.commit()
    sqlite_session.expunge_all()

    assert mvo.id is not None
    loaded = repository.get(mvo.id)
    assert loaded is not None
    assert [value.value for value in loaded.values_for("Department")] == ["Engineering"]


def test_pending_exports_are_ordered_by_creation(sqlite_session: Session) -> None:
    repository = SqlAlchemyPendingExportRepository(sqlite_session)
    account = directory_user("E1")
    later = PendingExport(
        connected_system_id=DIRECTORY_SYSTEM_ID,
        connected_system_object_id=account.id,
        change_type=PendingExportChangeType.UPDATE,
        created_at=BASE_TIME + timedelta(minutes=5),
    )
    earlier = PendingExport(
        connected_system_id=DIRECTORY_SYSTEM_ID,
        connected_system_object_id=account.id,
        change_type=PendingExportChangeType.CREATE,
        created_at=BASE_TIME,
    )
    repository.add_many([later, earlier])
    sqlite_session.commit()

    assert repository.for_connected_system_object(account.id) == [earlier, later]
    assert repository.for_connected_system(DIRECTORY_SYSTEM_ID) == [earlier, later]

    repository.delete_many([earlier])
    sqlite_session.commit()

    assert repository.for_connected_system_object(account.id) == [later]


def test_activity_execution_items(sqlite_session: Session) -> None:
    repository = SqlAlchemyActivityRepository(sqlite_session)
    activity = Activity(connected_system_id=HR_SYSTEM_ID)
    repository.add(activity)
    items = [
        activity.prepare_execution_item(ordered_id(1), object_change_type=ObjectChangeType.JOINED),
        activity.prepare_execution_item(ordered_id(2)),
    ]
    repository.add_execution_items(items)
    activity.objects_processed = 2
    repository.update(activity)
    sqlite_session.commit()

    stored_items = repository.execution_items(activity.id)
    assert {item.id for item in stored_items} == {item.id for item in items}
    stored = repository.get(activity.id)
    assert stored is not None
    assert stored.objects_processed == 2


def test_watermark_is_inserted_then_updated(sqlite_session: Session) -> None:
    repository = SqlAlchemySyncStateRepository(sqlite_session)

    assert repository.get_watermark(HR_SYSTEM_ID) is None

    repository.set_watermark(HR_SYSTEM_ID, BASE_TIME)
    repository.set_watermark(HR_SYSTEM_ID, BASE_TIME + timedelta(days=1))
    sqlite_session.commit()

    assert repository.get_watermark(HR_SYSTEM_ID) == BASE_TIME + timedelta(days=1)
    assert repository.get_watermark(DIRECTORY_SYSTEM_ID) is None
