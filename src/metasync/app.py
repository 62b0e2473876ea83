"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import ERROR, WARNING, getLogger
from typing import TYPE_CHECKING

from metasync.adapters.sqlalchemy.unit_of_work import SqlAlchemySyncUnitOfWork, is_started, startup
from metasync.config import get_sync_config
from metasync.domain.model import Activity, InitiatorType, SyncRunType, ValidationSeverity
from metasync.domain.ports import SyncUnitOfWork
from metasync.domain.sync import CancellationToken, SyncEngine

if TYPE_CHECKING:
    from metasync.domain.model import SyncConfiguration, SyncRuleValidationIssue

UnitOfWorkFactory = Callable[[], SyncUnitOfWork]


log = getLogger(__name__)


def run_sync(
    configuration: SyncConfiguration,
    *,
    connected_system_id: int,
    run_type: SyncRunType = SyncRunType.FULL_SYNC,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    page_size: int | None = None,
    change_tracking: bool | None = None,
    cancellation: CancellationToken | None = None,
    initiated_by_type: InitiatorType = InitiatorType.USER,
    initiated_by_name: str | None = None,
) -> Activity:
    """Run a full or delta synchronisation of one connected system.

    Without an explicit ``unit_of_work_factory`` the SQLAlchemy adapter is
    started (once per process) and used. ``page_size`` and
    ``change_tracking`` default to the environment configuration.
    """

    settings = get_sync_config()
    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = SqlAlchemySyncUnitOfWork

    engine = SyncEngine(
        unit_of_work_factory=unit_of_work_factory,
        configuration=configuration,
        page_size=page_size if page_size is not None else settings.page_size,
        change_tracking=(
            change_tracking if change_tracking is not None else settings.change_tracking
        ),
    )
    activity = Activity(
        connected_system_id=connected_system_id,
        run_type=run_type,
        initiated_by_type=initiated_by_type,
        initiated_by_name=initiated_by_name,
    )
    log.info(
        "Starting %s for connected system %s: page_size=%s, change_tracking=%s",
        run_type,
        connected_system_id,
        engine.page_size,
        engine.change_tracking,
    )

    result = engine.run(activity, cancellation=cancellation)

    summary = result.summary
    log.info(
        f"Finished {run_type}: status={result.status}, processed={result.objects_processed}/"
        f"{result.objects_to_process}, errors={summary.errors if summary else 0}"
    )
    return result


def validate_configuration(
    configuration: SyncConfiguration,
) -> dict[int, list[SyncRuleValidationIssue]]:
    """Return validation issues per sync rule id, logging each one."""

    issues_by_rule = configuration.validate()
    for rule_id, issues in sorted(issues_by_rule.items()):
        for issue in issues:
            level = ERROR if issue.severity is ValidationSeverity.ERROR else WARNING
            log.log(level, "Sync rule %s: %s", rule_id, issue.message)
    return issues_by_rule
