"""SQLAlchemy-backed unit of work for synchronisation runs.

The adapter keeps one engine per process. ``startup`` creates (or adopts) it
and migrates the schema; every ``SqlAlchemySyncUnitOfWork`` then opens its own
session from the shared factory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Self

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from metasync.adapters.sqlalchemy.mappings import start_mappers
from metasync.adapters.sqlalchemy.migrations import upgrade_head
from metasync.adapters.sqlalchemy.repositories import (
    SqlAlchemyActivityRepository,
    SqlAlchemyConnectedSystemObjectRepository,
    SqlAlchemyMetaverseObjectRepository,
    SqlAlchemyPendingExportRepository,
    SqlAlchemySyncStateRepository,
)
from metasync.config import DatabaseConfig, get_database_config
from metasync.domain.ports import SyncRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine
    from sqlalchemy.orm import SessionTransaction

log = logging.getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when the adapter or a unit of work is used in the wrong state."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None
    session_factory: sessionmaker[Session] | None = None

    def require_session_factory(self) -> sessionmaker[Session]:
        if self.session_factory is None:
            raise StartupError(
                "No database configured for sync runs; call"
                " metasync.adapters.sqlalchemy.unit_of_work.startup() first"
            )
        return self.session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Create or adopt the engine, migrate it to head and build the session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError("Database already configured; use force=True to switch engines")

    if engine is None:
        config = DatabaseConfig(uri=database_uri) if database_uri else get_database_config()
        engine = create_engine(config.uri, echo=config.echo, future=True)
    start_mappers()
    upgrade_head(engine=engine)

    _STATE.engine = engine
    _STATE.session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    log.debug("SQLAlchemy adapter started on %s", engine.url)


def configured_engine() -> Engine | None:
    """Engine used by new units of work, or ``None`` before ``startup``."""

    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the engine and forget the session factory."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None
    _STATE.session_factory = None


class SqlAlchemySyncUnitOfWork:
    """One session and one set of repositories per ``with`` block."""

    def __init__(self) -> None:
        self._session_factory = _STATE.require_session_factory()
        self._session: Session | None = None
        self._repositories: SyncRepositories | None = None

    def __enter__(self) -> Self:
        if self._session is not None:
            raise StartupError("Unit of work is already open")
        session = self._session_factory()
        self._session = session
        self._repositories = SyncRepositories(
            connected_system_objects=SqlAlchemyConnectedSystemObjectRepository(session),
            metaverse_objects=SqlAlchemyMetaverseObjectRepository(session),
            pending_exports=SqlAlchemyPendingExportRepository(session),
            activities=SqlAlchemyActivityRepository(session),
            sync_state=SqlAlchemySyncStateRepository(session),
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session = self.session
        if exc_type is not None:
            session.rollback()
        session.close()
        self._session = None
        self._repositories = None
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work is not open; use it in a with block")
        return self._session

    @property
    def repositories(self) -> SyncRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work is not open; use it in a with block")
        return self._repositories

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def savepoint(self) -> SessionTransaction:
        return self.session.begin_nested()


if TYPE_CHECKING:
    from metasync.domain.ports import SyncUnitOfWork

    _uow_sync_check: SyncUnitOfWork = SqlAlchemySyncUnitOfWork()
