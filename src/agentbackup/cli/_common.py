"""Shared utilities for all CLI command modules.

Provides the Rich console instance and the config lookups that the
read-only commands (history, archives) share.
"""

from __future__ import annotations

from pathlib import Path

from rich.console import Console

from .. import WORKSPACE_ENV
from ..config import ConfigError, load_config, require_env

console = Console()
err_console = Console(stderr=True)


def repo_path_or_exit() -> Path:
    """Archive repository root from the environment, or exit 1."""
    try:
        workspace = Path(require_env(WORKSPACE_ENV)).expanduser()
        config = load_config(workspace)
    except ConfigError as exc:
        err_console.print(f"[red]Error: {exc}[/]")
        raise SystemExit(1)
    return Path(config.backup_repo_path).expanduser()


def flag(value: bool) -> str:
    """Rich markup for a changed/unchanged flag."""
    return "[yellow]changed[/]" if value else "[dim]unchanged[/]"
