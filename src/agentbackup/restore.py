"""
Restore orchestrator -- put every archived agent back where it lived.

Restore targets always come from each agent's archived agent.json.

A run has two phases:

    stage   copy each archived agentDir/ to a private temp tree and decrypt it
    apply   mirror workspace/ and the staged agentDir/ to their destinations

The archive working tree is never decrypted in place. All agents are
staged before any destination is written, so the credential guard (an
archived auth-profiles.json without --confirm-auth-overwrite) stops the run
before a single agent is restored.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from . import PASSWORD_ENV
from .archive import CREDENTIAL_FILE, ArchiveRepository, agent_capture_root, credential_relpath
from .config import ConfigError, load_settings
from .mirror import LocalTreeMirror, TreeMirror, create_mirror
from .models import ArchiveMetadata, RestoreResult
from .repository import GitRepository, RepositoryError
from .vault import unseal_tree

logger = logging.getLogger("agentbackup.restore")


@dataclass
class StagedAgent:
    """An archived agent, decrypted and ready to be written back.

    Attributes:
        agent_id: Archive directory name.
        metadata: The archived agent.json.
        workspace_source: Archived workspace/, if one exists.
        agent_dir_source: Decrypted staging copy of agentDir/, if one exists.
        has_credentials: Whether the staged tree holds the credential file.
    """

    agent_id: str
    metadata: ArchiveMetadata
    workspace_source: Optional[Path] = None
    agent_dir_source: Optional[Path] = None
    has_credentials: bool = False


class RestoreOrchestrator:
    """Drives a restore run.

    Args:
        repo_path: Archive repository root.
        passphrase: Payload cipher passphrase.
        repository: Git handle, used to check ``target_sha``.
        mirror: Mirror used to write destinations.
        target_sha: Revision the caller expects the archive to be at.
        confirm_auth_overwrite: Allow restoring credential files.
    """

    def __init__(
        self,
        repo_path: Path,
        passphrase: str,
        repository: Optional[GitRepository] = None,
        mirror: Optional[TreeMirror] = None,
        target_sha: Optional[str] = None,
        confirm_auth_overwrite: bool = False,
    ):
        self.archive = ArchiveRepository(repo_path)
        self.passphrase = passphrase
        self.repository = repository or GitRepository(self.archive.root)
        self.mirror = mirror or LocalTreeMirror()
        self.target_sha = target_sha
        self.confirm_auth_overwrite = confirm_auth_overwrite

    def run(self) -> RestoreResult:
        """Restore every archived agent."""
        try:
            return self._run()
        except Exception as exc:
            logger.exception("Restore failed")
            return RestoreResult(success=False, message="Restore operation failed", error=str(exc))

    def _run(self) -> RestoreResult:
        if not self.archive.exists():
            return RestoreResult(
                success=False,
                message=f"Backup repository not found at {self.archive.root}",
                error="Backup repo not found",
            )
        if not self.archive.has_archives():
            return RestoreResult(
                success=False,
                message="Archives directory not found in backup repository",
                error="No archives found",
            )
        if not self.passphrase:
            return RestoreResult(
                success=False,
                message="Encryption password not provided",
                error=f"{PASSWORD_ENV} environment variable is not set",
            )
        if self.target_sha:
            mismatch = self._check_revision(self.target_sha)
            if mismatch:
                return mismatch

        agent_ids = self.archive.list_agent_ids()
        logger.info("Restoring %d archived agent(s) from %s", len(agent_ids), self.archive.root)
        errors: list[str] = []

        with tempfile.TemporaryDirectory(prefix="agentbackup-restore-") as tmp:
            staging_root = Path(tmp)
            staged: list[StagedAgent] = []
            for agent_id in agent_ids:
                try:
                    staged.append(self.stage_agent(agent_id, staging_root))
                except Exception as exc:
                    logger.error("Staging agent %s failed: %s", agent_id, exc)
                    errors.append(f"Agent {agent_id}: {exc}")

            guarded = [s.agent_id for s in staged if s.has_credentials]
            if guarded and not self.confirm_auth_overwrite:
                logger.warning(
                    "Refusing to restore %s for agent(s) %s without confirmation",
                    CREDENTIAL_FILE, ", ".join(guarded),
                )
                return RestoreResult(
                    success=False,
                    message=(
                        f"Archive contains {CREDENTIAL_FILE} (API tokens) for agent(s): "
                        f"{', '.join(guarded)}. Nothing was restored."
                    ),
                    agents_restored=0,
                    error="\n".join(["Credential overwrite not confirmed", *errors]),
                    auth_overwrite_warning=True,
                )

            restored = 0
            for agent in staged:
                try:
                    self.apply_agent(agent)
                    restored += 1
                except Exception as exc:
                    logger.error("Restoring agent %s failed: %s", agent.agent_id, exc)
                    errors.append(f"Agent {agent.agent_id}: {exc}")

        if errors:
            return RestoreResult(
                success=False,
                message=f"Restored {restored} agents with errors",
                agents_restored=restored,
                error="\n".join(errors),
            )
        logger.info("Restored %d agent(s)", restored)
        return RestoreResult(
            success=True,
            message=f"Successfully restored {restored} agents",
            agents_restored=restored,
        )

    def _check_revision(self, ref: str) -> Optional[RestoreResult]:
        """Fail unless the archive working tree is checked out at ``ref``."""
        try:
            wanted = self.repository.resolve(ref)
            head = self.repository.head()
        except RepositoryError as exc:
            return RestoreResult(
                success=False, message=f"Cannot resolve revision {ref}", error=str(exc),
            )
        if wanted != head:
            return RestoreResult(
                success=False,
                message=(
                    f"Archive is at {head[:12]}, not {ref}. Run "
                    f"'git -C {self.archive.root} checkout {ref}' and restore again."
                ),
                error="Revision mismatch",
            )
        return None

    def stage_agent(self, agent_id: str, staging_root: Path) -> StagedAgent:
        """Read metadata and decrypt the archived agentDir/ into staging.

        Raises:
            FileNotFoundError / ValueError: Missing or invalid agent.json.
            CipherError: An artifact failed to decrypt.
        """
        metadata = self.archive.read_metadata(agent_id)
        staged = StagedAgent(agent_id=agent_id, metadata=metadata)

        workspace_source = self.archive.workspace_path(agent_id)
        if workspace_source.is_dir():
            staged.workspace_source = workspace_source

        sealed = self.archive.agent_dir_path(agent_id)
        if sealed.is_dir():
            plain = staging_root / agent_id / "agentDir"
            shutil.copytree(sealed, plain, symlinks=True)
            unseal_tree(plain, self.passphrase)
            staged.agent_dir_source = plain
            staged.has_credentials = (plain / credential_relpath(metadata.agent_dir)).is_file()

        return staged

    def apply_agent(self, agent: StagedAgent) -> None:
        """Mirror a staged agent onto its archived destinations."""
        if agent.workspace_source is not None:
            dest = Path(agent.metadata.workspace).expanduser()
            dest.mkdir(parents=True, exist_ok=True)
            self.mirror.sync(agent.workspace_source, dest)

        if agent.agent_dir_source is not None:
            dest = agent_capture_root(agent.metadata.agent_dir)
            dest.mkdir(parents=True, exist_ok=True)
            self.mirror.sync(agent.agent_dir_source, dest)

        logger.info("Restored agent %s", agent.agent_id)


def perform_restore(
    target_sha: Optional[str] = None,
    confirm_auth_overwrite: bool = False,
    env: Optional[Mapping[str, str]] = None,
    repository: Optional[GitRepository] = None,
) -> RestoreResult:
    """Run a restore configured from the environment."""
    try:
        settings = load_settings(env)
    except ConfigError as exc:
        logger.error("%s", exc)
        return RestoreResult(success=False, message=str(exc), error="Missing configuration")

    orchestrator = RestoreOrchestrator(
        repo_path=settings.repo_path,
        passphrase=settings.passphrase.get_secret_value(),
        repository=repository,
        mirror=create_mirror(settings.config.mirror),
        target_sha=target_sha,
        confirm_auth_overwrite=confirm_auth_overwrite,
    )
    return orchestrator.run()
