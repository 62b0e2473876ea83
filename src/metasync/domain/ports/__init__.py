"""Domain port definitions for adapters."""

from __future__ import annotations

from .exports import ExportEvaluationResult, ExportEvaluator
from .matching import MetaverseObjectMatcher, MultipleMatchesError
from .persistence import (
    ActivityRepository,
    ConnectedSystemObjectRepository,
    MetaverseObjectRepository,
    PendingExportRepository,
    SyncStateRepository,
)
from .unit_of_work import SyncRepositories, SyncUnitOfWork

__all__ = [
    "ActivityRepository",
    "ConnectedSystemObjectRepository",
    "ExportEvaluationResult",
    "ExportEvaluator",
    "MetaverseObjectMatcher",
    "MetaverseObjectRepository",
    "MultipleMatchesError",
    "PendingExportRepository",
    "SyncRepositories",
    "SyncStateRepository",
    "SyncUnitOfWork",
]
