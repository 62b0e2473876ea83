from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, event

from metasync.adapters.sqlalchemy.migrations import current_revision, head_revision
from metasync.adapters.sqlalchemy.repositories import SqlAlchemyMetaverseObjectRepository
from metasync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemySyncUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)
from metasync.app import run_sync
from metasync.domain.model import (
    ActivityStatus,
    ConnectedSystemObjectStatus,
    DeletionRule,
    ObjectChangeType,
    PendingExportChangeType,
)
from tests.helpers.sync import (
    DIRECTORY_SYSTEM_ID,
    HR_SYSTEM_ID,
    employee,
    make_configuration,
    person,
    person_type,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import Session

    from metasync.domain.model import MetaverseObject


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def test_sqlalchemy_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemySyncUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b
    assert is_started()


def test_startup_migrates_to_head(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    assert current_revision(sqlite_engine) == head_revision()


def test_repositories_require_an_open_session(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemySyncUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_run_sync_persists_projection_and_provisioning(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork],
) -> None:
    source = employee("E1", display_name="Ada Lovelace", department="Engineering")
    with sqlite_unit_of_work() as uow:
        uow.repositories.connected_system_objects.add_many([source])
        uow.commit()

    activity = run_sync(
        make_configuration(),
        connected_system_id=HR_SYSTEM_ID,
        unit_of_work_factory=sqlite_unit_of_work,
    )

    assert activity.status is ActivityStatus.COMPLETE
    assert activity.objects_processed == 1
    with sqlite_unit_of_work() as uow:
        repositories = uow.repositories
        [mvo] = repositories.metaverse_objects.find_by_attribute("person", "EmployeeId", "E1")
        stored_source = repositories.connected_system_objects.get(source.id)
        assert stored_source is not None
        assert stored_source.metaverse_object_id == mvo.id
        assert [value.value for value in mvo.values_for("DisplayName")] == ["Ada Lovelace"]

        [create] = repositories.pending_exports.for_connected_system(DIRECTORY_SYSTEM_ID)
        assert create.change_type is PendingExportChangeType.CREATE

        stored_activity = repositories.activities.get(activity.id)
        assert stored_activity is not None
        assert stored_activity.status is ActivityStatus.COMPLETE
        assert repositories.sync_state.get_watermark(HR_SYSTEM_ID) == activity.started_at


def test_failed_metaverse_delete_rolls_back_to_savepoint_and_commits_the_page(
    sqlite_unit_of_work: Callable[[], SqlAlchemySyncUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    mvo = person("E1", display_name="Ada Lovelace")
    gone = employee("E1", joined_to=mvo, object_status=ConnectedSystemObjectStatus.OBSOLETE)
    newcomer = employee("E2", display_name="Grace Hopper")
    with sqlite_unit_of_work() as uow:
        uow.repositories.metaverse_objects.add_many([mvo])
        uow.repositories.connected_system_objects.add_many([gone, newcomer])
        uow.commit()

    def refuse_flush(_session: Session, _flush_context: object) -> None:
        raise RuntimeError("database is locked")

    def failing_delete(
        repository: SqlAlchemyMetaverseObjectRepository,
        metaverse_object: MetaverseObject,
    ) -> None:
        event.listen(repository.session, "after_flush", refuse_flush)
        try:
            repository.session.delete(metaverse_object)
            repository.session.flush()
        finally:
            event.remove(repository.session, "after_flush", refuse_flush)

    monkeypatch.setattr(SqlAlchemyMetaverseObjectRepository, "delete", failing_delete)
    configuration = make_configuration(
        person=person_type(deletion_rule=DeletionRule.WHEN_LAST_CONNECTOR_DISCONNECTED)
    )

    activity = run_sync(
        configuration,
        connected_system_id=HR_SYSTEM_ID,
        unit_of_work_factory=sqlite_unit_of_work,
    )

    assert activity.status is ActivityStatus.COMPLETE
    assert mvo.id is not None
    with sqlite_unit_of_work() as uow:
        repositories = uow.repositories
        stored = repositories.metaverse_objects.get(mvo.id)
        assert stored is not None
        assert stored.last_connector_disconnected_date is not None
        assert repositories.connected_system_objects.get(gone.id) is None
        stored_newcomer = repositories.connected_system_objects.get(newcomer.id)
        assert stored_newcomer is not None
        assert stored_newcomer.metaverse_object_id is not None
        changes = {
            item.object_change_type for item in repositories.activities.execution_items(activity.id)
        }
        assert changes == {
            ObjectChangeType.DISCONNECTED,
            ObjectChangeType.DELETED,
            ObjectChangeType.PROJECTED,
        }
