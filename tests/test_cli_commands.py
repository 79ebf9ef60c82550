from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path

import pytest
from typer.testing import CliRunner

from swapbox.cli.app import app
from swapbox.cli.deps import reset_container

app_module = import_module("swapbox.cli.app")


def _env(monkeypatch: pytest.MonkeyPatch, database_url: str = "memory://") -> None:
    monkeypatch.setenv("SWAPBOX_DATABASE_URL", database_url)
    monkeypatch.setenv("SWAPBOX_LOCAL_BOXES", "B1:small,B2:large")
    monkeypatch.setenv("SWAPBOX_LOCAL_ITEMS", "1:10x10x10,2:10x10x10,3:20x10x5")
    monkeypatch.setenv("SWAPBOX_ENV", "test")
    for name in ("SWAPBOX_LEDGER_URL", "SWAPBOX_BOX_REGISTRY_URL", "SWAPBOX_NOTIFICATIONS_URL"):
        monkeypatch.delenv(name, raising=False)
    reset_container()


def _code(output: str) -> str:
    match = re.search(r"Code: (\d+)", output)
    assert match is not None, output
    return match.group(1)


def test_cli_show_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _env(monkeypatch, f"sqlite+aiosqlite:///{tmp_path/'cli.db'}")
    runner = CliRunner()
    result = runner.invoke(app, ["show-settings"])
    assert result.exit_code == 0
    assert "Environment:\ttest" in result.stdout
    assert "Item ledger:\tin-memory" in result.stdout


def test_cli_full_exchange(monkeypatch: pytest.MonkeyPatch) -> None:
    _env(monkeypatch)
    runner = CliRunner()

    proposed = runner.invoke(app, ["propose", "10", "20", "--items", "1,2"])
    assert proposed.exit_code == 0, proposed.stdout
    assert "Exchange 1\tproposed" in proposed.stdout

    assigned = runner.invoke(app, ["assign-box", "1"])
    assert assigned.exit_code == 0
    assert "box_assigned\tbox B1" in assigned.stdout

    creator = runner.invoke(app, ["request-open", "1", "--role", "creator", "--user", "10"])
    assert creator.exit_code == 0
    deposited = runner.invoke(app, ["consume-open", "1", _code(creator.stdout)])
    assert "awaiting_pickup" in deposited.stdout

    status = runner.invoke(app, ["status", "1"])
    assert "Status:\tawaiting_pickup" in status.stdout
    assert "Deadline:" in status.stdout

    pickup = runner.invoke(app, ["request-open", "1", "--role", "PICKUP"])
    completed = runner.invoke(app, ["consume-open", "1", _code(pickup.stdout)])
    assert completed.exit_code == 0
    assert "completed" in completed.stdout

    archived = runner.invoke(app, ["archive", "1"])
    assert archived.exit_code == 0
    listed = runner.invoke(app, ["list-exchanges", "10"])
    assert "No exchanges found" in listed.stdout
    listed_all = runner.invoke(app, ["list-exchanges", "10", "--include-archived"])
    assert "Exchange 1\tcompleted" in listed_all.stdout


def test_cli_reports_domain_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _env(monkeypatch)
    runner = CliRunner()

    assert runner.invoke(app, ["propose", "10", "20", "--items", "3"]).exit_code == 0
    conflict = runner.invoke(app, ["propose", "30", "20", "--items", "3"])
    assert conflict.exit_code == 1
    assert "ItemConflictError" in conflict.stdout

    wrong_role = runner.invoke(app, ["request-open", "1", "--role", "pickup"])
    assert wrong_role.exit_code == 1
    assert "InvalidRoleError" in wrong_role.stdout

    cancelled = runner.invoke(app, ["cancel", "1"])
    assert "cancelled" in cancelled.stdout
    again = runner.invoke(app, ["cancel", "1"])
    assert again.exit_code == 1
    assert "InvalidCancellationError" in again.stdout

    missing = runner.invoke(app, ["status", "99"])
    assert missing.exit_code == 1
    assert "NotFoundError" in missing.stdout

    bad_items = runner.invoke(app, ["propose", "10", "20", "--items", "a,b"])
    assert bad_items.exit_code != 0


def test_cli_commit_and_sweep(monkeypatch: pytest.MonkeyPatch) -> None:
    _env(monkeypatch)
    runner = CliRunner()

    runner.invoke(app, ["propose", "10", "20", "--items", "1"])
    committed = runner.invoke(app, ["commit-items", "1"])
    assert "items_committed" in committed.stdout

    swept = runner.invoke(app, ["sweep-expired"])
    assert swept.exit_code == 0
    assert "Expired 0 exchange(s)" in swept.stdout


class StubCoordinator:
    async def expire_overdue(self, *, limit: int = 100) -> tuple[object, ...]:
        assert limit == 5
        return (object(), object())


class StubContainer:
    coordinator = StubCoordinator()


def test_cli_uses_container_coordinator(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module, "get_container", lambda: StubContainer())
    runner = CliRunner()
    result = runner.invoke(app, ["sweep-expired", "--limit", "5"])
    assert result.exit_code == 0
    assert "Expired 2 exchange(s)" in result.stdout


def test_cli_refuses_local_collaborators_with_sqlite(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _env(monkeypatch, f"sqlite+aiosqlite:///{tmp_path/'cli.db'}")
    runner = CliRunner()

    result = runner.invoke(app, ["propose", "10", "20", "--items", "1,2"])

    assert result.exit_code == 1
    assert "SWAPBOX_LEDGER_URL" in result.stdout
    assert "SWAPBOX_BOX_REGISTRY_URL" in result.stdout
    assert not (tmp_path / "cli.db").exists()


def test_cli_lists_all_exchanges(monkeypatch: pytest.MonkeyPatch) -> None:
    _env(monkeypatch)
    runner = CliRunner()

    assert runner.invoke(app, ["propose", "10", "20", "--items", "1"]).exit_code == 0
    assert runner.invoke(app, ["propose", "30", "40", "--items", "2"]).exit_code == 0

    listed = runner.invoke(app, ["list-exchanges"])
    assert listed.exit_code == 0
    assert "Exchange 1\tproposed" in listed.stdout
    assert "Exchange 2\tproposed" in listed.stdout
    only_user = runner.invoke(app, ["list-exchanges", "40"])
    assert "Exchange 1" not in only_user.stdout
    assert "Exchange 2\tproposed" in only_user.stdout
