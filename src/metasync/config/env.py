"""Environment variable loaders for configuration."""

from __future__ import annotations

import os

from .errors import InvalidSettingError, MissingConfigurationError

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _raw(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def require_env_var(name: str) -> str:
    """Return the environment variable or raise if it is missing/blank."""

    value = os.getenv(name)
    if value is None or not value.strip():
        raise MissingConfigurationError(name)
    return value


def int_from_env(name: str, default: int, *, minimum: int | None = None) -> int:
    raw = _raw(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise InvalidSettingError(name, "an integer", raw) from exc
    if minimum is not None and value < minimum:
        raise InvalidSettingError(name, f"at least {minimum}", raw)
    return value


def bool_from_env(name: str, default: bool) -> bool:  # noqa: FBT001
    raw = _raw(name)
    if raw is None:
        return default
    normalized = raw.lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise InvalidSettingError(name, "a boolean (1/0, true/false, yes/no, on/off)", raw)
