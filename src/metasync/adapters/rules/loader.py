"""Load sync configuration documents from disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from metasync.config import ConfigurationError

from .schema import RulesDocument
from .translator import to_sync_configuration

if TYPE_CHECKING:
    from collections.abc import Mapping

    from metasync.domain.model import SyncConfiguration

log = logging.getLogger(__name__)


class RulesDocumentError(ConfigurationError):
    """Raised when a sync configuration document cannot be parsed or validated."""


def parse_sync_configuration(payload: Mapping[str, object] | str | bytes) -> SyncConfiguration:
    """Validate ``payload`` (a JSON string or an already decoded mapping)."""

    try:
        if isinstance(payload, str | bytes):
            document = RulesDocument.model_validate_json(payload)
        else:
            document = RulesDocument.model_validate(payload)
    except ValidationError as exc:
        raise RulesDocumentError(f"Invalid sync configuration document:\n{exc}") from exc
    try:
        return to_sync_configuration(document)
    except ValueError as exc:
        raise RulesDocumentError(f"Invalid sync configuration document: {exc}") from exc


def load_sync_configuration(path: str | Path) -> SyncConfiguration:
    rules_path = Path(path).expanduser()
    log.info("Loading sync configuration from %s", rules_path)
    try:
        raw = rules_path.read_bytes()
    except OSError as exc:
        raise RulesDocumentError(f"Cannot read sync configuration {rules_path}: {exc}") from exc
    try:
        return parse_sync_configuration(raw)
    except RulesDocumentError as exc:
        raise RulesDocumentError(f"{rules_path}: {exc}") from exc

