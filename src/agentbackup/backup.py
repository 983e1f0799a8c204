"""
Backup orchestrator -- one run across every agent on the roster.

    load settings -> discover agents -> per agent:
        write agent.json -> mirror workspace -> mirror agentDir -> seal agentDir
    -> one git commit for the whole archive

Each agent is processed on its own: a failure is recorded on that agent's
BackupChange and the loop moves on, with any plaintext it left in the
archived agentDir/ deleted first. The commit always happens, since every
agent.json carries a fresh timestamp even when no file changed.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Mapping, Optional

from . import PASSWORD_ENV
from .archive import ArchiveRepository, agent_capture_root
from .cipher import ENCRYPTED_SUFFIX, HEADER_LENGTH
from .config import ConfigError, load_settings
from .mirror import LocalTreeMirror, TreeMirror, create_mirror
from .models import (
    AgentBinding,
    ArchiveMetadata,
    BackupChange,
    BackupResult,
    current_timestamp,
)
from .repository import GitRepository, RepositoryError
from .roster import AgentRoster, CommandRoster, DiscoveryError, validate_bindings
from .vault import scrub_plaintext, seal_tree

logger = logging.getLogger("agentbackup.backup")


def commit_message(timestamp: str) -> str:
    return f"Backup: {timestamp}"


class BackupOrchestrator:
    """Drives a backup run.

    Args:
        repo_path: Archive repository root.
        passphrase: Payload cipher passphrase.
        roster: Source of agent bindings.
        repository: Commit handle. Defaults to git at ``repo_path``.
        mirror: Mirror used for workspaces. Defaults to the local mirror.
    """

    def __init__(
        self,
        repo_path: Path,
        passphrase: str,
        roster: AgentRoster,
        repository: Optional[GitRepository] = None,
        mirror: Optional[TreeMirror] = None,
    ):
        self.archive = ArchiveRepository(repo_path)
        self.passphrase = passphrase
        self.roster = roster
        self.repository = repository or GitRepository(self.archive.root)
        self.mirror = mirror or LocalTreeMirror()
        self.sealed_mirror = LocalTreeMirror(
            sealed_suffix=ENCRYPTED_SUFFIX, sealed_overhead=HEADER_LENGTH,
        )

    def run(self) -> BackupResult:
        """Back up every valid agent and commit the archive."""
        try:
            return self._run()
        except Exception as exc:
            logger.exception("Backup failed")
            return BackupResult(success=False, message="Backup failed", error=str(exc))

    def _run(self) -> BackupResult:
        if not self.passphrase:
            return BackupResult(
                success=False,
                message="Encryption password not provided",
                error=f"{PASSWORD_ENV} environment variable is not set",
            )
        if not self.archive.exists():
            return BackupResult(
                success=False,
                message=f"Backup repository not found at {self.archive.root}",
                error="Backup repo not initialized",
            )

        run_timestamp = current_timestamp()

        try:
            records = self.roster.list_agents()
        except DiscoveryError as exc:
            logger.error("Agent discovery failed: %s", exc)
            return BackupResult(success=False, message="Agent discovery failed", error=str(exc))

        agents = validate_bindings(records)
        logger.info("Backing up %d agent(s) to %s", len(agents), self.archive.root)

        self.archive.archives_dir.mkdir(parents=True, exist_ok=True)
        changes = [self.backup_agent(agent) for agent in agents]

        try:
            self.repository.commit_all(commit_message(run_timestamp))
        except RepositoryError as exc:
            logger.error("Backup commit failed: %s", exc)
            return BackupResult(
                success=False,
                message="Backup completed but git commit failed",
                agents_processed=len(agents),
                changes=changes,
                error=str(exc),
            )

        result = BackupResult(
            success=True, message="", agents_processed=len(agents), changes=changes,
        )
        failed = [c for c in changes if c.error]
        if failed:
            result.success = False
            result.message = (
                f"Backed up {len(agents)} agents with {len(failed)} error(s). "
                f"Changes: {result.changed_count}"
            )
            result.error = "\n".join(f"Agent {c.agent_id}: {c.error}" for c in failed)
        else:
            result.message = f"Backed up {len(agents)} agents. Changes: {result.changed_count}"
        logger.info(result.message)
        return result

    def backup_agent(self, agent: AgentBinding) -> BackupChange:
        """Archive one agent. Never raises; failures land on the change record."""
        change = BackupChange(agent_id=agent.id)
        try:
            self.archive.write_metadata(ArchiveMetadata.from_binding(agent))

            change.workspace_changed = self.mirror.sync(
                Path(agent.workspace).expanduser(),
                self.archive.workspace_path(agent.id),
            )

            sealed_dir = self.archive.agent_dir_path(agent.id)
            change.agent_dir_changed = self.sealed_mirror.sync(
                agent_capture_root(agent.agent_dir), sealed_dir,
            )
            seal_tree(sealed_dir, self.passphrase)
        except Exception as exc:
            logger.error("Backup of agent %s failed: %s", agent.id, exc)
            change.error = str(exc)
            self._discard_plaintext(agent.id)
            return change

        logger.info(
            "Agent %s: workspace %s, agentDir %s",
            agent.id,
            "changed" if change.workspace_changed else "unchanged",
            "changed" if change.agent_dir_changed else "unchanged",
        )
        return change

    def _discard_plaintext(self, agent_id: str) -> None:
        """Leave only artifacts in the archived agentDir/ before it is committed."""
        try:
            sealed_dir = self.archive.agent_dir_path(agent_id)
        except ValueError:
            return
        try:
            scrub_plaintext(sealed_dir)
        except OSError as exc:
            logger.error("Could not scrub %s, removing it: %s", sealed_dir, exc)
            shutil.rmtree(sealed_dir, ignore_errors=True)


def perform_backup(
    env: Optional[Mapping[str, str]] = None,
    roster: Optional[AgentRoster] = None,
    repository: Optional[GitRepository] = None,
) -> BackupResult:
    """Run a backup configured from the environment.

    Args:
        env: Environment mapping. Defaults to ``os.environ``.
        roster: Override the configured roster command.
        repository: Override the git handle.
    """
    try:
        settings = load_settings(env)
    except ConfigError as exc:
        logger.error("%s", exc)
        return BackupResult(success=False, message=str(exc), error="Missing configuration")

    orchestrator = BackupOrchestrator(
        repo_path=settings.repo_path,
        passphrase=settings.passphrase.get_secret_value(),
        roster=roster or CommandRoster(settings.config.roster_command),
        repository=repository,
        mirror=create_mirror(settings.config.mirror),
    )
    return orchestrator.run()
