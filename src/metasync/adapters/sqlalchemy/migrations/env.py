"""Alembic environment for the metasync schema.

``upgrade_head`` hands over an open connection through
``config.attributes["connection"]``; the Alembic CLI falls back to
``sqlalchemy.url`` or the configured database.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from alembic import context
from sqlalchemy import create_engine, pool

from metasync.adapters.sqlalchemy import mapper_registry, start_mappers
from metasync.config import get_database_config

if TYPE_CHECKING:
    from sqlalchemy.engine import Connection

config = context.config
log = logging.getLogger("alembic.env")

start_mappers()
target_metadata = mapper_registry.metadata

# SQLite needs batch mode for ALTER TABLE
_COMMON_OPTIONS = {"render_as_batch": True, "compare_type": True}


def _database_uri() -> str:
    return config.get_main_option("sqlalchemy.url") or get_database_config().uri


def _migrate(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, **_COMMON_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL for the configured database without connecting to it."""

    context.configure(
        url=_database_uri(),
        target_metadata=target_metadata,
        literal_binds=True,
        **_COMMON_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connection = config.attributes.get("connection")
    if connection is not None:
        _migrate(connection)
        return

    uri = _database_uri()
    log.info("Migrating %s", uri)
    engine = create_engine(uri, poolclass=pool.NullPool, future=True)
    try:
        with engine.connect() as new_connection:
            _migrate(new_connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
