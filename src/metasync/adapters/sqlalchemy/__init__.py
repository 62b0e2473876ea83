"""SQLAlchemy adapter package for metasync."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyActivityRepository,
    SqlAlchemyConnectedSystemObjectRepository,
    SqlAlchemyMetaverseObjectRepository,
    SqlAlchemyPendingExportRepository,
    SqlAlchemySyncStateRepository,
)
from .unit_of_work import SqlAlchemySyncUnitOfWork, StartupError, shutdown, startup

__all__ = [
    "SqlAlchemyActivityRepository",
    "SqlAlchemyConnectedSystemObjectRepository",
    "SqlAlchemyMetaverseObjectRepository",
    "SqlAlchemyPendingExportRepository",
    "SqlAlchemySyncStateRepository",
    "SqlAlchemySyncUnitOfWork",
    "StartupError",
    "create_all_tables",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
