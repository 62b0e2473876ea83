"""Application configuration helpers."""

from __future__ import annotations

from .env import bool_from_env, int_from_env, require_env_var
from .errors import ConfigurationError, InvalidSettingError, MissingConfigurationError
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config
from .sync import DEFAULT_PAGE_SIZE, SyncConfig, get_sync_config

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "ConfigurationError",
    "DatabaseConfig",
    "InvalidSettingError",
    "MissingConfigurationError",
    "StorageConfig",
    "SyncConfig",
    "bool_from_env",
    "configure_logging",
    "get_database_config",
    "get_storage_config",
    "get_sync_config",
    "int_from_env",
    "require_env_var",
]
