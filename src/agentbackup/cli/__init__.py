"""
agentbackup CLI -- the backup-agents command line.

The main Click group is defined here and every command group lives in
its own module, registered via a register function.

Entry point: agentbackup.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="backup-agents")
@click.option("--verbose", "-v", is_flag=True, help="Log progress at DEBUG level.")
def main(verbose: bool):
    """Versioned, encrypted backup and restore of agent state.

    \b
    Environment:
      OPENCLAW_WORKSPACE           workspace holding .backupconfig.json
      BACKUP_ENCRYPTION_PASSWORD   passphrase for encrypting agentDir files
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .backup import register_backup_commands
from .restore import register_restore_commands
from .schedule import register_schedule_commands

register_backup_commands(main)
register_restore_commands(main)
register_schedule_commands(main)
