"""Backup commands: backup, history, archives."""

from __future__ import annotations

import click

from ._common import console, err_console, flag, repo_path_or_exit

from rich.panel import Panel
from rich.table import Table


def register_backup_commands(main: click.Group) -> None:
    """Register backup, history and archives."""

    @main.command("backup")
    def backup_cmd():
        """Back up all agents now.

        Mirrors every agent's workspace and agent directory into the
        archive repository, encrypts the agent directory, and commits.

        Examples:

            backup-agents backup
        """
        from ..backup import perform_backup

        console.print("\n[cyan]Starting backup...[/]")
        result = perform_backup()

        if result.changes:
            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Agent", style="cyan")
            table.add_column("Workspace")
            table.add_column("AgentDir")
            table.add_column("Error", style="red")
            for change in result.changes:
                table.add_row(
                    change.agent_id,
                    flag(change.workspace_changed),
                    flag(change.agent_dir_changed),
                    change.error or "",
                )
            console.print(table)

        if not result.success:
            err_console.print(f"[red]Backup failed: {result.message}[/]")
            if result.error:
                err_console.print(f"  [red]{result.error}[/]")
            raise SystemExit(1)

        console.print(Panel(
            f"[bold green]Backup complete[/]\n"
            f"Agents processed: {result.agents_processed}\n"
            f"Changes: {result.changed_count}",
            title="Backup",
            border_style="green",
        ))

    @main.command("history")
    @click.option("--limit", "-n", default=20, show_default=True, type=click.IntRange(min=1),
                  help="Number of commits to show.")
    def history_cmd(limit: int):
        """Show recent backup history.

        Examples:

            backup-agents history

            backup-agents history -n 5
        """
        from ..repository import GitRepository, RepositoryError

        repo = GitRepository(repo_path_or_exit())
        try:
            commits = repo.history(limit=limit)
        except RepositoryError as exc:
            err_console.print(f"[red]Failed to fetch history: {exc}[/]")
            raise SystemExit(1)

        if not commits:
            console.print("\n[dim]No backups committed yet.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Commit", style="cyan")
        table.add_column("Date", style="dim")
        table.add_column("Message")
        for commit in commits:
            table.add_row(commit.short_sha, commit.date, commit.subject)

        console.print(f"\n[bold]{len(commits)}[/] backup(s):\n")
        console.print(table)
        console.print()

    @main.command("archives")
    def archives_cmd():
        """List archived agents and their restore targets.

        Examples:

            backup-agents archives
        """
        from ..archive import ArchiveRepository

        archive = ArchiveRepository(repo_path_or_exit())
        entries = archive.list_metadata()
        if not entries:
            console.print("\n[dim]No archived agents.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Agent", style="cyan")
        table.add_column("Name")
        table.add_column("Backed up", style="dim")
        table.add_column("Workspace")
        table.add_column("AgentDir")
        for meta in entries:
            name = " ".join(part for part in (meta.identity_emoji, meta.identity_name) if part)
            table.add_row(meta.id, name, meta.backed_up_at, meta.workspace, meta.agent_dir)

        console.print(f"\n[bold]{len(entries)}[/] archived agent(s):\n")
        console.print(table)
        console.print()
