"""Smoke tests for the draft engine CLI; everything runs in memory."""

from typer.testing import CliRunner

from draft_engine.cli import _parse_team_list, app, synthetic_assets
from draft_engine.models import AssetCategory

runner = CliRunner()


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("simulate", "init-db", "show-config"):
        assert command in result.stdout


def test_simulate_all_auto_teams():
    result = runner.invoke(app, ["simulate", "--teams", "3", "--auto-teams", "all"])
    assert result.exit_code == 0, result.stdout
    assert "Draft complete" in result.stdout
    assert "player_picked: 30" in result.stdout
    assert "timer_start" not in result.stdout
    assert "auto_pick.executions,success=true: 30" in result.stdout


def test_simulate_with_expiring_clocks():
    result = runner.invoke(app, ["simulate", "--teams", "2", "--time-limit", "0.01", "--draft-type", "linear"])
    assert result.exit_code == 0, result.stdout
    assert "timer_start: 2" in result.stdout
    assert "auto_pick_enabled:" in result.stdout
    assert "draft_complete: 1" in result.stdout


def test_simulate_rejects_bad_team_list():
    result = runner.invoke(app, ["simulate", "--auto-teams", "one,two"])
    assert result.exit_code == 1


def test_init_db_creates_tables(tmp_path):
    db_file = tmp_path / "draft.db"
    result = runner.invoke(app, ["init-db", "--db-uri", f"sqlite+aiosqlite:///{db_file}"])
    assert result.exit_code == 0, result.stdout
    assert db_file.exists()


def test_show_config():
    result = runner.invoke(app, ["show-config"])
    assert result.exit_code == 0
    assert "TICK_INTERVAL_S" in result.stdout


def test_helpers():
    assert _parse_team_list("all", 3) == [1, 2, 3]
    assert _parse_team_list("1, 3", 3) == [1, 3]
    assert _parse_team_list(None, 3) == []
    assets = synthetic_assets(2, seed=1)
    assert len(assets) == 2 * len(AssetCategory)
    assert synthetic_assets(2, seed=1) == assets


def test_init_db_on_default_engine_closes_it():
    from draft_engine import db

    result = runner.invoke(app, ["init-db"])
    assert result.exit_code == 0, result.stdout
    assert "Tables ready" in result.stdout
    assert db._engine is None
