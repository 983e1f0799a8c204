"""Restore command."""

from __future__ import annotations

from typing import Optional

import click

from ._common import console, err_console


def register_restore_commands(main: click.Group) -> None:
    """Register the restore command."""

    @main.command("restore")
    @click.option("--sha", default=None, metavar="REF",
                  help="Commit the archive must be checked out at.")
    @click.option("--confirm-auth-overwrite", is_flag=True,
                  help="Allow overwriting auth-profiles.json (API tokens).")
    def restore_cmd(sha: Optional[str], confirm_auth_overwrite: bool):
        """Restore all archived agents to their original locations.

        Restores whatever revision the archive repository has checked
        out. To go back in time, check out the commit first and pass the
        same ref with --sha as a guard.

        Examples:

            backup-agents restore

            backup-agents restore --sha abc123def456

            backup-agents restore --confirm-auth-overwrite
        """
        from ..restore import perform_restore

        if sha:
            console.print(f"\n[cyan]Restoring from commit {sha}...[/]")
        else:
            console.print("\n[cyan]Restoring latest backup...[/]")

        result = perform_restore(target_sha=sha, confirm_auth_overwrite=confirm_auth_overwrite)

        if result.success:
            console.print("[bold green]Restore complete[/]")
            console.print(f"  Agents restored: {result.agents_restored}")
            return

        if result.auth_overwrite_warning:
            err_console.print(f"[yellow]{result.message}[/]")
            rerun = "backup-agents restore"
            if sha:
                rerun += f" --sha {sha}"
            err_console.print(
                f"\n  To restore including sensitive credentials, run:\n"
                f"  [bold]{rerun} --confirm-auth-overwrite[/]"
            )
        else:
            err_console.print(f"[red]Restore failed: {result.message}[/]")
            if result.error:
                err_console.print(f"  [red]{result.error}[/]")
        raise SystemExit(1)
