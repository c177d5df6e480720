from __future__ import annotations

import json
from pathlib import Path

import pytest

from flow_sync import cli
from flow_sync.config import settings
from flow_sync.domain.outcome import SyncError, SyncLoginFailure, SyncSuccess


@pytest.fixture
def cli_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "database_url", f"sqlite:///{tmp_path / 'cli.db'}")


def test_exit_codes():
    assert cli._exit_code(None) == 0
    assert cli._exit_code(SyncSuccess(mode="full")) == 0
    assert cli._exit_code(SyncError(mode="full", kind="transport", cause="x")) == 1
    assert cli._exit_code(SyncLoginFailure(mode="full")) == 2


def test_cli_skips_when_sync_disabled(cli_db, monkeypatch, capsys):
    monkeypatch.setattr(settings, "sync_enabled", False)

    code = cli.main(["--account", "acct"])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"status": "skipped", "account": "acct"}


def test_cli_reports_login_failure_without_token(cli_db, monkeypatch, capsys):
    monkeypatch.setattr(settings, "sync_enabled", True)
    monkeypatch.setattr(settings, "sync_account", "acct")
    monkeypatch.setattr(settings, "tasks_api_token", "")

    code = cli.main(["--init-db", "--upload-only"])

    assert code == 2
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == "login_failure"
    assert out["mode"] == "upload_only"
    assert out["counters"]["auth_errors"] == 1
