"""Schedule commands: install, uninstall, status of the backup timer."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from .. import WORKSPACE_ENV
from ._common import console, err_console

from rich.panel import Panel


def register_schedule_commands(main: click.Group) -> None:
    """Register the schedule command group."""

    @main.group()
    def schedule():
        """Scheduled backups via a systemd user timer.

        The service reads BACKUP_ENCRYPTION_PASSWORD from
        ~/.config/agentbackup/env (create it with mode 0600).
        """

    @schedule.command("install")
    @click.option("--interval", default="hourly", show_default=True,
                  help="systemd OnCalendar expression.")
    @click.option("--workspace", envvar=WORKSPACE_ENV, required=True, type=click.Path(),
                  help="Workspace holding .backupconfig.json.")
    @click.option("--exec-path", default=None, help="Path to the backup-agents executable.")
    @click.option("--unit-dir", default=None, type=click.Path(), help="Where to write unit files.")
    @click.option("--no-enable", is_flag=True, help="Write the units without enabling the timer.")
    def schedule_install(interval: str, workspace: str, exec_path: Optional[str],
                         unit_dir: Optional[str], no_enable: bool):
        """Install and enable the backup timer.

        Examples:

            backup-agents schedule install

            backup-agents schedule install --interval "*:0/15"
        """
        from ..systemd import install_timer, systemd_available

        enable = not no_enable
        if enable and not systemd_available():
            err_console.print("[red]systemd user session not available (try --no-enable).[/]")
            raise SystemExit(1)

        result = install_timer(
            workspace=Path(workspace),
            interval=interval,
            unit_dir=Path(unit_dir).expanduser() if unit_dir else None,
            exec_path=exec_path,
            enable=enable,
        )
        state = "[green]enabled[/]" if result["enabled"] else "[yellow]not enabled[/]"
        console.print(Panel(
            f"Units written to [cyan]{result['unit_dir']}[/]\n"
            f"Interval: {interval}\n"
            f"Timer: {state}",
            title="Backup Schedule",
            border_style="green" if result["enabled"] or not enable else "yellow",
        ))
        if enable and not result["enabled"]:
            raise SystemExit(1)

    @schedule.command("uninstall")
    @click.option("--unit-dir", default=None, type=click.Path(), help="Where the unit files live.")
    def schedule_uninstall(unit_dir: Optional[str]):
        """Disable the timer and remove the unit files."""
        from ..systemd import uninstall_timer

        result = uninstall_timer(unit_dir=Path(unit_dir).expanduser() if unit_dir else None)
        if result["removed"]:
            console.print("[green]Backup schedule removed.[/]")
        else:
            console.print("[dim]No backup schedule was installed.[/]")

    @schedule.command("status")
    @click.option("--unit-dir", default=None, type=click.Path(), help="Where the unit files live.")
    def schedule_status(unit_dir: Optional[str]):
        """Show whether the timer is installed and when it runs next."""
        from ..systemd import timer_status

        status = timer_status(unit_dir=Path(unit_dir).expanduser() if unit_dir else None)
        if not status.installed:
            console.print("\n[dim]Backup schedule not installed.[/]\n")
            return

        console.print(Panel(
            f"Enabled: {'yes' if status.enabled else 'no'}\n"
            f"Active: {'yes' if status.active else 'no'}\n"
            f"Last run: {status.last_trigger or '-'} ({status.last_result or 'unknown'})\n"
            f"Next run: {status.next_elapse or '-'}",
            title="Backup Schedule",
            border_style="green" if status.active else "yellow",
        ))
