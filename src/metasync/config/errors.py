"""Configuration error definitions."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class MissingConfigurationError(ConfigurationError):
    """Raised when a required environment variable is absent or blank."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Missing configuration for: {name}")
        self.name = name


class InvalidSettingError(ConfigurationError):
    """Raised when an environment variable is set to a value that cannot be used."""

    def __init__(self, name: str, expected: str, raw: str) -> None:
        super().__init__(f"{name} must be {expected}, got {raw!r}")
        self.name = name
        self.raw = raw
