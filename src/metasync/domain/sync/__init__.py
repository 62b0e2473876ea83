"""Synchronisation core reconciling connected system objects with the metaverse.

Per page of connected system objects:
1) confirm pending exports and tear down obsolete objects (``teardown``)
2) join, project and flow attributes for the rest (``reconcile``)
3) flow reference attributes once the page is joined (``references``)
4) submit the page's writes in a fixed order (``flush``)

After the last page, references that pointed at later pages are retried.
``engine.SyncEngine`` drives the whole run.
"""

from __future__ import annotations

from .batch import PageBatch, SyncContext
from .contracts import (
    AlreadyJoined,
    AmbiguousMatch,
    DeletionDecision,
    DriftResult,
    Joined,
    JoinOutcome,
    JoinStatus,
    NoMatch,
)
from .engine import DEFAULT_PAGE_SIZE, CancellationToken, RunState, SyncEngine
from .exports import RuleBasedExportEvaluator
from .expressions import ExpressionContext, ExpressionError, ExpressionEvaluator, FormulaEvaluator
from .matching import AttributeMatcher

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "AlreadyJoined",
    "AmbiguousMatch",
    "AttributeMatcher",
    "CancellationToken",
    "DeletionDecision",
    "DriftResult",
    "ExpressionContext",
    "ExpressionError",
    "ExpressionEvaluator",
    "FormulaEvaluator",
    "JoinOutcome",
    "JoinStatus",
    "Joined",
    "NoMatch",
    "PageBatch",
    "RuleBasedExportEvaluator",
    "RunState",
    "SyncContext",
    "SyncEngine",
]
