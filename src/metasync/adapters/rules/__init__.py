"""Sync configuration documents: JSON schema, translation and loading."""

from __future__ import annotations

from .loader import RulesDocumentError, load_sync_configuration, parse_sync_configuration
from .schema import RulesDocument
from .translator import to_sync_configuration

__all__ = [
    "RulesDocument",
    "RulesDocumentError",
    "load_sync_configuration",
    "parse_sync_configuration",
    "to_sync_configuration",
]
