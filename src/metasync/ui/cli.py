from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from metasync import __version__
from metasync.adapters.rules import load_sync_configuration
from metasync.adapters.sqlalchemy.migrations import current_revision, head_revision
from metasync.adapters.sqlalchemy.unit_of_work import configured_engine, startup
from metasync.app import run_sync, validate_configuration
from metasync.config import ConfigurationError, configure_logging, require_env_var
from metasync.domain.model import ActivityStatus, SyncRunType, ValidationSeverity
from metasync.domain.sync import CancellationToken

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

RULES_FILE_ENV = "METASYNC_RULES_FILE"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {value}") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return parsed


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="metasync",
        description="Synchronise connected systems with the metaverse",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run a full or delta synchronisation")
    sync.add_argument(
        "--system-id",
        type=int,
        required=True,
        help="Id of the connected system to synchronise",
    )
    sync.add_argument(
        "--config",
        type=str,
        help=f"Sync configuration document (defaults to ${RULES_FILE_ENV})",
    )
    sync.add_argument(
        "--delta",
        action="store_true",
        help="Only process objects modified since the last completed run",
    )
    sync.add_argument(
        "--page-size",
        type=_positive_int,
        default=None,
        help="Connected system objects per page (defaults to config)",
    )
    sync.add_argument(
        "--no-change-tracking",
        action="store_true",
        help="Do not record metaverse object change history",
    )

    validate = subparsers.add_parser("validate", help="Validate a sync configuration document")
    validate.add_argument(
        "--config",
        type=str,
        help=f"Sync configuration document (defaults to ${RULES_FILE_ENV})",
    )

    subparsers.add_parser("migrate", help="Upgrade the database schema to the latest revision")

    return parser.parse_args(list(argv))


def _rules_path(args: argparse.Namespace) -> str:
    if args.config:
        return args.config
    return require_env_var(RULES_FILE_ENV)


def _exit_code(status: ActivityStatus) -> int:
    match status:
        case ActivityStatus.FAILED:
            return EXIT_FAILED
        case ActivityStatus.CANCELLED:
            return EXIT_CANCELLED
        case _:
            return EXIT_OK


def _install_cancellation(token: CancellationToken) -> None:
    def _handler(_signal_received: int, _frame: FrameType | None) -> None:
        if token.cancelled:
            log.warning("Second interrupt; exiting immediately")
            sys.exit(EXIT_CANCELLED)
        log.info("Cancellation requested (Ctrl+C); finishing the current page")
        token.cancel()

    signal.signal(signal.SIGINT, _handler)


def _run_sync(args: argparse.Namespace) -> int:
    configuration = load_sync_configuration(_rules_path(args))
    token = CancellationToken()
    _install_cancellation(token)
    activity = run_sync(
        configuration,
        connected_system_id=args.system_id,
        run_type=SyncRunType.DELTA_SYNC if args.delta else SyncRunType.FULL_SYNC,
        page_size=args.page_size,
        change_tracking=False if args.no_change_tracking else None,
        cancellation=token,
    )
    summary = activity.summary
    if summary is not None:
        log.info(
            "Activity %s: %s creates, %s updates, %s flows, %s deletes, %s errors",
            activity.id,
            summary.creates,
            summary.updates,
            summary.flows,
            summary.deletes,
            summary.errors,
        )
    return _exit_code(activity.status)


def _validate(args: argparse.Namespace) -> int:
    configuration = load_sync_configuration(_rules_path(args))
    issues_by_rule = validate_configuration(configuration)
    errors = sum(
        1
        for issues in issues_by_rule.values()
        for issue in issues
        if issue.severity is ValidationSeverity.ERROR
    )
    log.info(
        "Checked %s sync rules: %s with issues, %s errors",
        len(configuration.sync_rules),
        len(issues_by_rule),
        errors,
    )
    return EXIT_FAILED if errors else EXIT_OK


def _migrate() -> int:
    startup()
    engine = configured_engine()
    revision = current_revision(engine) if engine is not None else None
    log.info("Database schema at revision %s (head %s)", revision, head_revision())
    return EXIT_OK if revision == head_revision() else EXIT_FAILED


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        if parsed_args.command == "sync":
            code = _run_sync(parsed_args)
        elif parsed_args.command == "validate":
            code = _validate(parsed_args)
        elif parsed_args.command == "migrate":
            code = _migrate()
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301
    except ConfigurationError:
        log.exception("Configuration error")
        sys.exit(EXIT_USAGE)
    except Exception:
        log.exception("Fatal error during sync")
        sys.exit(EXIT_FAILED)
    sys.exit(code)


if __name__ == "__main__":
    main()
