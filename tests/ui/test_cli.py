from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from metasync.adapters.rules import RulesDocumentError
from metasync.domain.model import (
    Activity,
    ActivityStatus,
    SyncConfiguration,
    SyncRuleValidationIssue,
    SyncRunType,
    ValidationSeverity,
)
from metasync.ui import cli

if TYPE_CHECKING:
    from collections.abc import Sequence


@pytest.fixture(autouse=True)
def isolate_cli(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "load_dotenv", lambda: False)
    monkeypatch.setattr(cli, "_install_cancellation", lambda _token: None)
    monkeypatch.setattr(cli, "load_sync_configuration", lambda _path: SyncConfiguration())
    monkeypatch.delenv(cli.RULES_FILE_ENV, raising=False)


def _exit_code(argv: Sequence[str]) -> int | str | None:
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


def _fake_run_sync(
    monkeypatch: pytest.MonkeyPatch,
    status: ActivityStatus = ActivityStatus.COMPLETE,
) -> dict[str, Any]:
    captured: dict[str, Any] = {}

    def fake_run_sync(configuration: SyncConfiguration, **kwargs: Any) -> Activity:
        captured.update(kwargs, configuration=configuration)
        return Activity(connected_system_id=kwargs["connected_system_id"], status=status)

    monkeypatch.setattr(cli, "run_sync", fake_run_sync)
    return captured


def test_sync_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _fake_run_sync(monkeypatch)

    assert _exit_code(["sync", "--system-id", "1", "--config", "rules.json"]) == cli.EXIT_OK
    assert captured["connected_system_id"] == 1
    assert captured["run_type"] is SyncRunType.FULL_SYNC
    assert captured["page_size"] is None
    assert captured["change_tracking"] is None


def test_sync_with_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = _fake_run_sync(monkeypatch)
    monkeypatch.setenv(cli.RULES_FILE_ENV, "rules.json")

    code = _exit_code(
        ["sync", "--system-id", "2", "--delta", "--page-size", "50", "--no-change-tracking"]
    )

    assert code == cli.EXIT_OK
    assert captured["run_type"] is SyncRunType.DELTA_SYNC
    assert captured["page_size"] == 50
    assert captured["change_tracking"] is False


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (ActivityStatus.COMPLETE_WITH_WARNING, cli.EXIT_OK),
        (ActivityStatus.FAILED, cli.EXIT_FAILED),
        (ActivityStatus.CANCELLED, cli.EXIT_CANCELLED),
    ],
)
def test_sync_exit_code_follows_activity_status(
    monkeypatch: pytest.MonkeyPatch, status: ActivityStatus, expected: int
) -> None:
    _fake_run_sync(monkeypatch, status)

    assert _exit_code(["sync", "--system-id", "1", "--config", "rules.json"]) == expected


def test_sync_without_rules_file_is_a_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _fake_run_sync(monkeypatch)

    assert _exit_code(["sync", "--system-id", "1"]) == cli.EXIT_USAGE


def test_invalid_rules_document_is_a_usage_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken(_path: str) -> SyncConfiguration:
        raise RulesDocumentError("bad document")

    monkeypatch.setattr(cli, "load_sync_configuration", broken)

    assert _exit_code(["validate", "--config", "rules.json"]) == cli.EXIT_USAGE


def test_page_size_must_be_positive() -> None:
    assert _exit_code(["sync", "--system-id", "1", "--page-size", "0"]) == cli.EXIT_USAGE


def test_unexpected_errors_exit_with_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def crash(*_: object, **__: object) -> Activity:
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(cli, "run_sync", crash)

    assert _exit_code(["sync", "--system-id", "1", "--config", "rules.json"]) == cli.EXIT_FAILED


@pytest.mark.parametrize(
    ("severity", "expected"),
    [(ValidationSeverity.ERROR, cli.EXIT_FAILED), (ValidationSeverity.WARNING, cli.EXIT_OK)],
)
def test_validate_fails_only_on_errors(
    monkeypatch: pytest.MonkeyPatch, severity: ValidationSeverity, expected: int
) -> None:
    issue = SyncRuleValidationIssue(severity=severity, message="problem")
    monkeypatch.setattr(cli, "validate_configuration", lambda _configuration: {10: [issue]})

    assert _exit_code(["validate", "--config", "rules.json"]) == expected


def test_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    assert _exit_code(["--version"]) == 0
    assert capsys.readouterr().out.startswith("metasync ")
