"""Tests for the backup-agents command line via CliRunner."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from agentbackup import PASSWORD_ENV, WORKSPACE_ENV, __version__
from agentbackup.cli import main
from agentbackup.models import BackupChange, BackupResult, RestoreResult

from conftest import requires_git


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestMainGroup:

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    @pytest.mark.parametrize("command", ["backup", "restore", "history", "archives", "schedule"])
    def test_help(self, runner: CliRunner, command: str) -> None:
        result = runner.invoke(main, [command, "--help"])
        assert result.exit_code == 0


class TestBackupCommand:

    @patch("agentbackup.backup.perform_backup")
    def test_success(self, mock_backup: MagicMock, runner: CliRunner) -> None:
        mock_backup.return_value = BackupResult(
            success=True,
            message="Backed up 1 agents. Changes: 1",
            agents_processed=1,
            changes=[BackupChange(agent_id="main", workspace_changed=True)],
        )
        result = runner.invoke(main, ["backup"])

        assert result.exit_code == 0
        assert "Backup complete" in result.output
        assert "main" in result.output

    @patch("agentbackup.backup.perform_backup")
    def test_failure_exits_nonzero(self, mock_backup: MagicMock, runner: CliRunner) -> None:
        mock_backup.return_value = BackupResult(
            success=False, message="Agent discovery failed", error="gateway down",
        )
        result = runner.invoke(main, ["backup"])
        assert result.exit_code == 1


class TestRestoreCommand:

    @patch("agentbackup.restore.perform_restore")
    def test_passes_options(self, mock_restore: MagicMock, runner: CliRunner) -> None:
        mock_restore.return_value = RestoreResult(success=True, message="ok", agents_restored=2)
        result = runner.invoke(main, ["restore", "--sha", "abc123", "--confirm-auth-overwrite"])

        assert result.exit_code == 0
        mock_restore.assert_called_once_with(target_sha="abc123", confirm_auth_overwrite=True)
        assert "Agents restored: 2" in result.output

    @patch("agentbackup.restore.perform_restore")
    def test_auth_warning(self, mock_restore: MagicMock, runner: CliRunner) -> None:
        mock_restore.return_value = RestoreResult(
            success=False,
            message="Archive contains auth-profiles.json (API tokens). Nothing was restored.",
            error="Credential overwrite not confirmed",
            auth_overwrite_warning=True,
        )
        result = runner.invoke(main, ["restore"])
        assert result.exit_code == 1
        mock_restore.assert_called_once_with(target_sha=None, confirm_auth_overwrite=False)


class TestReadOnlyCommands:

    def test_history_without_config(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["history"], env={WORKSPACE_ENV: str(tmp_path)})
        assert result.exit_code == 1

    @requires_git
    def test_backup_then_history_and_archives(
        self, runner: CliRunner, workspace_env: dict, live_agent: dict,
    ) -> None:
        from agentbackup.backup import perform_backup
        from agentbackup.roster import StaticRoster

        assert perform_backup(env=workspace_env, roster=StaticRoster([live_agent])).success

        history = runner.invoke(main, ["history", "-n", "5"], env=workspace_env)
        assert history.exit_code == 0
        assert "Backup:" in history.output

        archives = runner.invoke(main, ["archives"], env=workspace_env)
        assert archives.exit_code == 0
        assert "main" in archives.output

    @requires_git
    def test_history_empty(self, runner: CliRunner, workspace_env: dict) -> None:
        result = runner.invoke(main, ["history"], env=workspace_env)
        assert result.exit_code == 0
        assert "No backups committed yet" in result.output


class TestScheduleCommands:

    @patch("agentbackup.systemd._systemctl")
    def test_install_no_enable(self, mock_ctl: MagicMock, runner: CliRunner, tmp_path: Path) -> None:
        unit_dir = tmp_path / "units"
        result = runner.invoke(main, [
            "schedule", "install", "--no-enable",
            "--workspace", str(tmp_path), "--unit-dir", str(unit_dir), "--interval", "daily",
        ])

        assert result.exit_code == 0, result.output
        assert (unit_dir / "agentbackup.timer").is_file()
        assert "OnCalendar=daily" in (unit_dir / "agentbackup.timer").read_text()

    @patch("agentbackup.systemd._run", side_effect=FileNotFoundError("systemctl"))
    def test_install_no_enable_without_systemctl(
        self, _mock_run: MagicMock, runner: CliRunner, tmp_path: Path,
    ) -> None:
        unit_dir = tmp_path / "units"
        result = runner.invoke(main, [
            "schedule", "install", "--no-enable",
            "--workspace", str(tmp_path), "--unit-dir", str(unit_dir),
        ])

        assert result.exit_code == 0, result.output
        assert (unit_dir / "agentbackup.service").is_file()

    @patch("agentbackup.systemd.systemd_available", return_value=False)
    def test_install_without_systemd(self, _avail: MagicMock, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, [
            "schedule", "install", "--workspace", str(tmp_path), "--unit-dir", str(tmp_path / "u"),
        ])
        assert result.exit_code == 1
        assert not (tmp_path / "u").exists()

    def test_status_not_installed(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(main, ["schedule", "status", "--unit-dir", str(tmp_path)])
        assert result.exit_code == 0
        assert "not installed" in result.output
