"""
Tests for CLI commands — run, detect, backups, config check, global options.
"""

import json
import logging
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from pvemirror.adapters.mock import MockAdapter
from pvemirror.adapters.registry import AdapterRegistry
from pvemirror.core.engine import pipeline
from pvemirror.core.use_cases import run as run_use_case
from pvemirror.core.models.lock import LockWaitState
from pvemirror.main import _LockWaitLine, cli
from tests.hosts import FakeProbe, make_host


@pytest.fixture(autouse=True)
def _no_env(monkeypatch):
    for var in ("PVEMIRROR_MIRROR_URL", "PVEMIRROR_BACKUP_DIR", "PVEMIRROR_LOG_FILE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def _restore_logging():
    """The CLI reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def shell(monkeypatch) -> MockAdapter:
    """Route every command the CLI issues to a mock, and never hold the lock."""
    mock = MockAdapter()

    def _registry() -> AdapterRegistry:
        reg = AdapterRegistry()
        reg.register(mock)
        return reg

    monkeypatch.setattr(run_use_case, "default_registry", _registry)
    monkeypatch.setattr(pipeline, "select_probe", lambda names: FakeProbe())
    return mock


def _make_config(tmp_path: Path, codename: str = "bookworm") -> Path:
    host = make_host(tmp_path / "host", codename)
    config = tmp_path / "pvemirror.yml"
    config.write_text(textwrap.dedent(f"""\
        mirror_url: https://mirrors.ustc.edu.cn
        root: {host}
        require_root: false
        probe_tools: []
        lock_timeout: 5
    """))
    return config


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "regional package mirror" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestRunCommand:
    def test_run_success(self, tmp_path: Path, shell: MockAdapter):
        config = _make_config(tmp_path)
        result = CliRunner().invoke(
            cli, ["--config", str(config), "run", "--no-autoremove", "--no-install-ovs"]
        )
        assert result.exit_code == 0, result.output
        assert "configuration complete" in result.output
        assert ["apt-get", "full-upgrade", "-y"] in shell.commands

        sources = (tmp_path / "host" / "etc/apt/sources.list").read_text()
        assert "mirrors.ustc.edu.cn" in sources

    def test_run_autoremove_flag(self, tmp_path: Path, shell: MockAdapter):
        config = _make_config(tmp_path)
        result = CliRunner().invoke(
            cli, ["--config", str(config), "run", "--autoremove", "--no-install-ovs"]
        )
        assert result.exit_code == 0, result.output
        assert ["apt-get", "autoremove", "-y"] in shell.commands

    def test_run_prompts_when_unset(self, tmp_path: Path, shell: MockAdapter):
        config = _make_config(tmp_path)
        result = CliRunner().invoke(
            cli, ["--config", str(config), "run"], input="y\nn\n"
        )
        assert result.exit_code == 0, result.output
        assert "autoremove" in result.output
        assert ["apt-get", "autoremove", "-y"] in shell.commands
        assert not any("openvswitch-switch" in argv for argv in shell.commands)

    def test_run_json(self, tmp_path: Path, shell: MockAdapter):
        config = _make_config(tmp_path)
        result = CliRunner().invoke(cli, ["--config", str(config), "-q", "run", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "ok"
        assert data["stage"] == "done"
        assert data["mirror_url"] == "https://mirrors.ustc.edu.cn"

    def test_run_dry_run_changes_nothing(self, tmp_path: Path, shell: MockAdapter):
        config = _make_config(tmp_path)
        before = (tmp_path / "host" / "etc/apt/sources.list").read_text()
        result = CliRunner().invoke(cli, ["--config", str(config), "run", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "[dry-run]" in result.output
        assert (tmp_path / "host" / "etc/apt/sources.list").read_text() == before
        assert shell.call_count == 0

    def test_run_unsupported_exits_1(self, tmp_path: Path, shell: MockAdapter):
        config = _make_config(tmp_path, codename="bullseye")
        result = CliRunner().invoke(
            cli, ["--config", str(config), "run", "--no-autoremove", "--no-install-ovs"]
        )
        assert result.exit_code == 1
        assert "Unsupported" in result.output
        assert shell.call_count == 0

    def test_run_command_failure_mentions_backups(self, tmp_path: Path, shell: MockAdapter):
        shell.set_failure("apt-update", error="Could not resolve host")
        config = _make_config(tmp_path)
        result = CliRunner().invoke(
            cli, ["--config", str(config), "run", "--no-autoremove", "--no-install-ovs"]
        )
        assert result.exit_code == 1
        assert "[ERROR]" in result.output
        assert "Backups of the original files" in result.output

    def test_run_missing_config(self, tmp_path: Path, shell: MockAdapter):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.yml"), "run"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestLockWaitLine:
    def test_line_ended_once_lock_released(self, capsys):
        line = _LockWaitLine()
        line(LockWaitState(elapsed_seconds=0, locked=True))
        line(LockWaitState(elapsed_seconds=1, locked=True))
        line(LockWaitState(elapsed_seconds=2, locked=False))
        err = capsys.readouterr().err
        assert err.endswith("(1s)\r\n")
        assert err.count("\n") == 1

    def test_close_after_timeout_ends_line(self, capsys):
        line = _LockWaitLine()
        line(LockWaitState(elapsed_seconds=5, locked=True))
        line.close()
        line.close()
        assert capsys.readouterr().err.endswith("(5s)\r\n")

    def test_nothing_written_without_wait(self, capsys):
        line = _LockWaitLine()
        line.close()
        assert capsys.readouterr().err == ""


class TestDetectCommand:
    def test_detect(self, tmp_path: Path):
        config = _make_config(tmp_path)
        result = CliRunner().invoke(cli, ["--config", str(config), "detect"])
        assert result.exit_code == 0, result.output
        assert "bookworm" in result.output
        assert "pve-no-subscription.list" in result.output

    def test_detect_json(self, tmp_path: Path):
        config = _make_config(tmp_path, codename="trixie")
        result = CliRunner().invoke(cli, ["--config", str(config), "-q", "detect", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["supported"] is True
        assert data["facts"]["codename"] == "trixie"
        assert data["plan"]["codename"] == "trixie"


class TestBackupsCommand:
    def test_no_backups(self, tmp_path: Path):
        config = _make_config(tmp_path)
        result = CliRunner().invoke(cli, ["--config", str(config), "backups"])
        assert result.exit_code == 0
        assert "No backups" in result.output

    def test_lists_runs_after_run(self, tmp_path: Path, shell: MockAdapter):
        config = _make_config(tmp_path)
        runner = CliRunner()
        runner.invoke(cli, ["--config", str(config), "run", "--no-autoremove", "--no-install-ovs"])
        result = runner.invoke(cli, ["--config", str(config), "-q", "backups", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert len(data["runs"]) == 1
        assert "sources.list" in data["runs"][0]["files"]
        assert data["runs"][0]["status"] == "ok"


class TestConfigCheckCommand:
    def test_valid(self, tmp_path: Path):
        config = _make_config(tmp_path)
        result = CliRunner().invoke(cli, ["--config", str(config), "config", "check"])
        assert result.exit_code == 0
        assert "valid" in result.output
        assert "require_root is disabled" in result.output

    def test_invalid(self, tmp_path: Path):
        config = tmp_path / "pvemirror.yml"
        config.write_text("mirror_url: not-a-url\n")
        result = CliRunner().invoke(cli, ["--config", str(config), "-q", "config", "check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["valid"] is False
        assert data["errors"]
