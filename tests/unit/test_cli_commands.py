"""Unit tests for the CLI: command registration, exit statuses and output."""

from __future__ import annotations

import json
import logging

import pytest
from rich.console import Console
from typer.testing import CliRunner

from flakebot.cli import app as app_module
from flakebot.cli.app import app
from flakebot.cli.commands import check_config

runner = CliRunner()

OLD_REV = "84d74ae9c9cbed73274b8e4e00be14688ffc93fe"
NEW_REV = "c601d56e19dd2ed71b23d8aa76be8437d043d4c5"
AUTHOR = {"name": "flakebot", "email": "flakebot@example.com"}


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    """Keep config lookups inside tmp_path and restore root logging afterwards."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    for var in ("FLAKEBOT_LOG_LEVEL", "FLAKEBOT_CACHE_DIR", "FLAKEBOT_CONFIG_FILE"):
        monkeypatch.delenv(var, raising=False)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def wide_console(monkeypatch):
    monkeypatch.setattr(check_config, "console", Console(width=200))


@pytest.fixture
def lock_files(tmp_path, make_lock):
    old = tmp_path / "old.lock"
    new = tmp_path / "new.lock"
    old.write_text(make_lock().github("nixpkgs", OLD_REV, "sha256-old", last_modified=1612000000).text())
    new.write_text(make_lock().github("nixpkgs", NEW_REV, "sha256-new", last_modified=1614000000).text())
    return old, new


def _write_config(tmp_path, data) -> str:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))
    return str(path)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestCliApp:
    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "check-config", "diff-locks"):
            assert command in result.output

    @pytest.mark.parametrize("command", ["run", "check-config", "diff-locks"])
    def test_command_help(self, command):
        assert runner.invoke(app, [command, "--help"]).exit_code == 0

    def test_main_is_entry_point(self):
        assert callable(app_module.main)


# ---------------------------------------------------------------------------
# diff-locks
# ---------------------------------------------------------------------------


class TestDiffLocks:
    def test_plain(self, lock_files):
        result = runner.invoke(app, ["diff-locks", *map(str, lock_files)])
        assert result.exit_code == 0
        assert result.stdout == "nixpkgs 84d74ae9c9 (2021-01-30) -> c601d56e19 (2021-02-22)\n"

    def test_markdown(self, lock_files):
        result = runner.invoke(app, ["diff-locks", "--markdown", *map(str, lock_files)])
        assert result.exit_code == 0
        assert result.stdout.startswith("| input | old | new | diff |")
        assert f"https://github.com/NixOS/nixpkgs/compare/{OLD_REV}...{NEW_REV}?expand=1" in result.stdout

    def test_identical_locks_print_nothing(self, lock_files):
        old, _ = lock_files
        result = runner.invoke(app, ["diff-locks", str(old), str(old)])
        assert result.exit_code == 0
        assert result.stdout == ""

    def test_missing_file(self, lock_files, tmp_path):
        old, _ = lock_files
        result = runner.invoke(app, ["diff-locks", str(old), str(tmp_path / "missing.lock")])
        assert result.exit_code == 65

    def test_malformed_lock(self, lock_files, tmp_path):
        old, _ = lock_files
        broken = tmp_path / "broken.lock"
        broken.write_text("{not json")
        result = runner.invoke(app, ["diff-locks", str(old), str(broken)])
        assert result.exit_code == 65

    def test_undecodable_lock(self, lock_files, tmp_path):
        old, _ = lock_files
        broken = tmp_path / "latin1.lock"
        broken.write_bytes(b"\xff\xfe{}")
        result = runner.invoke(app, ["diff-locks", str(old), str(broken)])
        assert result.exit_code == 65


# ---------------------------------------------------------------------------
# check-config
# ---------------------------------------------------------------------------


class TestCheckConfig:
    def test_complete_defaults(self, tmp_path, wide_console):
        path = _write_config(tmp_path, {
            "author": AUTHOR,
            "cooldown": 1500,
            "repos": [
                {"type": "git+none", "url": "file:///srv/one"},
                {"type": "git+none", "url": "file:///srv/two", "settings": {"inputs": ["nixpkgs"]}},
            ],
        })
        result = runner.invoke(app, ["check-config", path])
        assert result.exit_code == 0
        assert "Default settings are complete." in result.stdout
        assert "Repositories" in result.stdout
        assert "file:///srv/one" in result.stdout
        assert "nixpkgs" in result.stdout
        assert "1500 ms" in result.stdout

    def test_incomplete_defaults_completed_per_repo(self, tmp_path, wide_console):
        path = _write_config(tmp_path, {
            "repos": [
                {"type": "git+none", "url": "file:///srv/ok", "settings": {"author": AUTHOR, "cooldown": 0}},
                {"type": "git+none", "url": "file:///srv/bad"},
            ],
        })
        result = runner.invoke(app, ["check-config", path])
        assert result.exit_code == 0
        assert "incomplete" in result.stdout
        assert "OK" in result.stdout
        assert "Field author is missing from the settings" in result.stdout

    def test_no_repositories(self, tmp_path, wide_console):
        path = _write_config(tmp_path, {"author": AUTHOR, "cooldown": 0, "repos": []})
        result = runner.invoke(app, ["check-config", path])
        assert result.exit_code == 0
        assert "No repositories configured." in result.stdout

    def test_unreadable_config(self, tmp_path):
        result = runner.invoke(app, ["check-config", str(tmp_path / "missing.json")])
        assert result.exit_code == 66

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text('{"repos": [{"type": "svn"}]}')
        result = runner.invoke(app, ["check-config", str(path)])
        assert result.exit_code == 78

    def test_default_config_location(self, tmp_path, wide_console):
        config_dir = tmp_path / "xdg-config" / "flakebot"
        config_dir.mkdir(parents=True)
        (config_dir / "config.json").write_text(json.dumps({"repos": []}))
        result = runner.invoke(app, ["check-config"])
        assert result.exit_code == 0
        assert "No repositories configured." in result.stdout


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRun:
    def test_empty_fleet_succeeds(self, tmp_path):
        path = _write_config(tmp_path, {"author": AUTHOR, "cooldown": 0, "repos": []})
        result = runner.invoke(app, ["run", path])
        assert result.exit_code == 0
        assert (tmp_path / "xdg-cache" / "flakebot").is_dir()

    def test_unreadable_config(self, tmp_path):
        result = runner.invoke(app, ["run", str(tmp_path / "missing.json")])
        assert result.exit_code == 66

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[]")
        result = runner.invoke(app, ["run", str(path)])
        assert result.exit_code == 78

    def test_cache_dir_not_creatable(self, tmp_path, monkeypatch):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        monkeypatch.setenv("FLAKEBOT_CACHE_DIR", str(blocker / "cache"))
        path = _write_config(tmp_path, {"repos": []})
        result = runner.invoke(app, ["run", path])
        assert result.exit_code == 77

    def test_bad_verbosity(self, tmp_path):
        path = _write_config(tmp_path, {"repos": []})
        result = runner.invoke(app, ["run", path, "--verbosity", "LOUD"])
        assert result.exit_code == 2

    def test_undecodable_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_bytes(b"\xff\xfe{}")
        result = runner.invoke(app, ["run", str(path)])
        assert result.exit_code == 78
