"""Logging setup for the metasync CLI."""

from __future__ import annotations

import logging

# libraries that log every statement or migration step at INFO
_CHATTY_LOGGERS = ("sqlalchemy.engine", "alembic.runtime.migration")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger with a terse format suitable for CLI output.

    Below DEBUG, SQLAlchemy and Alembic are capped at WARNING so a sync run
    only reports its own progress. Pass ``force=True`` to reconfigure.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    library_level = logging.NOTSET if level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
