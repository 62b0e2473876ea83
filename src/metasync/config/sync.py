"""Synchronization run defaults."""

from __future__ import annotations

from dataclasses import dataclass

from .env import bool_from_env, int_from_env

DEFAULT_PAGE_SIZE = 200


@dataclass(frozen=True, slots=True)
class SyncConfig:
    page_size: int = DEFAULT_PAGE_SIZE
    change_tracking: bool = True


def get_sync_config() -> SyncConfig:
    """Read ``METASYNC_PAGE_SIZE`` and ``METASYNC_MVO_CHANGE_TRACKING``."""

    return SyncConfig(
        page_size=int_from_env("METASYNC_PAGE_SIZE", DEFAULT_PAGE_SIZE, minimum=1),
        change_tracking=bool_from_env("METASYNC_MVO_CHANGE_TRACKING", True),  # noqa: FBT003
    )
