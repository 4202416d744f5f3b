from unittest.mock import patch, MagicMock
from click.testing import CliRunner
import pytest

from anime_organizer.anime_organizer.main import cli
from anime_organizer.anime_organizer.config import reload_config
from anime_organizer.anime_organizer.models import DbUpdateResult

SMALL_DB = """<?xml version="1.0" encoding="utf-8"?>
<db>
  <subs time="1700000000" name_jp="葬送のフリーレン" name_cht="葬送的芙莉蓮" name_en="Frieren" type="TV"/>
</db>
"""


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Isolated settings: mock provider, no AnimeDB calls, all state under tmp_path."""
    monkeypatch.setenv("AI_PROVIDER", "mock")
    monkeypatch.setenv("ANIMEDB_ENABLED", "false")
    monkeypatch.setenv("SCAN_STATE_FILE", str(tmp_path / "scan.json"))
    monkeypatch.setenv("HISTORY_DB_PATH", str(tmp_path / "history.db"))
    monkeypatch.setenv("SUBSHARE_DB_PATH", str(tmp_path / "db.xml"))
    monkeypatch.setenv("LOG_LOG_FILE", str(tmp_path / "test.log"))
    monkeypatch.delenv("TARGET_PATH", raising=False)
    reload_config()
    yield tmp_path
    monkeypatch.undo()
    reload_config()


@pytest.fixture
def library(env):
    root = env / "anime"
    root.mkdir()
    (root / "[Group] Frieren [1080p]").mkdir()
    (root / "[Group] Frieren [1080p]" / "01.mkv").write_bytes(b"video")
    # Already follows the default template
    (root / "Bocchi (2022)").mkdir()
    return root


def test_scan_then_rename_then_restore(env, library):
    runner = CliRunner()

    result = runner.invoke(cli, ["scan", str(library), "--no-table"])
    assert result.exit_code == 0, result.output
    assert "1 identified" in result.output
    assert "1 already organized" in result.output
    assert (env / "scan.json").exists()

    result = runner.invoke(cli, ["rename", str(library), "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "Dry run: 1 folders would be renamed." in result.output
    assert (library / "[Group] Frieren [1080p]").is_dir()

    result = runner.invoke(cli, ["rename", str(library), "--yes"])
    assert result.exit_code == 0, result.output
    assert (library / "葬送的芙莉蓮 (2023)" / "01.mkv").exists()

    # The saved scan now points at the new folder, so nothing is left to do
    result = runner.invoke(cli, ["rename", str(library), "--yes"])
    assert "Nothing to rename." in result.output

    result = runner.invoke(cli, ["history"])
    assert result.exit_code == 0
    assert "Success" in result.output

    result = runner.invoke(cli, ["restore", "1"])
    assert result.exit_code == 0, result.output
    assert (library / "[Group] Frieren [1080p]").is_dir()
    assert not (library / "葬送的芙莉蓮 (2023)").exists()


def test_rename_can_be_declined(env, library):
    runner = CliRunner()
    runner.invoke(cli, ["scan", str(library), "--no-table"])

    result = runner.invoke(cli, ["rename", str(library)], input="n\n")

    assert "Aborted." in result.output
    assert (library / "[Group] Frieren [1080p]").is_dir()


def test_rename_without_scan(env, library):
    result = CliRunner().invoke(cli, ["rename", str(library)])
    assert "No saved scan found" in result.output


def test_scan_requires_target(env):
    result = CliRunner().invoke(cli, ["scan"])
    assert result.exit_code == 1


def test_scan_missing_directory(env):
    result = CliRunner().invoke(cli, ["scan", str(env / "nope")])
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_restore_unknown_entry(env):
    result = CliRunner().invoke(cli, ["restore", "42"])
    assert result.exit_code == 1
    assert "No history entry" in result.output


def test_history_empty(env):
    result = CliRunner().invoke(cli, ["history"])
    assert "No rename history yet." in result.output


def test_search_without_database(env):
    result = CliRunner().invoke(cli, ["search", "芙莉蓮"])
    assert result.exit_code == 0
    assert "db update" in result.output


def test_search_and_diagnostics(env):
    (env / "db.xml").write_text(SMALL_DB, encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(cli, ["search", "芙莉蓮"])
    assert result.exit_code == 0, result.output
    assert "1 results" in result.output

    result = runner.invoke(cli, ["search", "Evangelion"])
    assert "No titles match" in result.output

    result = runner.invoke(cli, ["diagnostics"])
    assert result.exit_code == 0
    assert "Indexed records" in result.output


def test_db_status_and_import(env, tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli, ["db", "status"])
    assert "No database" in result.output

    source = tmp_path / "download.xml"
    source.write_text(SMALL_DB, encoding="utf-8")
    result = runner.invoke(cli, ["db", "import", str(source)])
    assert result.exit_code == 0, result.output
    assert "Imported" in result.output
    assert (env / "db.xml").exists()

    result = runner.invoke(cli, ["db", "status"])
    assert "No database" not in result.output
    assert "modified" in result.output


def test_db_update_failure_exits_nonzero(env):
    service = MagicMock()
    service.update.return_value = DbUpdateResult(
        success=False, message="All sources failed: primary: down / backup: down",
        errors=["primary: down", "backup: down"],
    )
    with patch("anime_organizer.anime_organizer.cli.db.build_db_service", return_value=service):
        result = CliRunner().invoke(cli, ["db", "update"])

    assert result.exit_code == 1
    assert "All sources failed" in result.output
    service.close.assert_called_once()


def test_models_lists_mock_catalog(env):
    result = CliRunner().invoke(cli, ["models"])
    assert result.exit_code == 0
    assert "mock" in result.output
