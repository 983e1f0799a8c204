"""
Git handle for the archive repository.

Every command runs with ``cwd`` pointed at the repository root; the
process working directory is never changed.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("agentbackup.repository")

_FIELD_SEP = "\x1f"


class RepositoryError(Exception):
    """Raised when a git operation on the archive repository fails."""


@dataclass
class CommitInfo:
    """One entry of the backup history.

    Attributes:
        sha: Full commit hash.
        short_sha: Abbreviated hash.
        date: Committer date, ISO-8601.
        subject: First line of the commit message.
    """

    sha: str
    short_sha: str
    date: str
    subject: str


class GitRepository:
    """Operations on one git working tree.

    Args:
        root: Repository root directory.
        binary: git executable to run.
    """

    def __init__(self, root: Path, binary: str = "git"):
        self.root = Path(root).expanduser()
        self.binary = binary

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.binary, *args],
                cwd=str(self.root), capture_output=True, text=True, check=False,
            )
        except OSError as exc:
            raise RepositoryError(f"Could not run {self.binary}: {exc}") from exc

    def _checked(self, *args: str) -> str:
        result = self._git(*args)
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise RepositoryError(f"git {' '.join(args)} failed: {detail}")
        return result.stdout.strip()

    def is_repository(self) -> bool:
        if not self.root.is_dir():
            return False
        result = self._git("rev-parse", "--is-inside-work-tree")
        return result.returncode == 0 and result.stdout.strip() == "true"

    def commit_all(self, message: str) -> str:
        """Stage every change in the tree and commit it.

        The commit is created even when nothing is staged.

        Returns:
            The new commit's full hash.

        Raises:
            RepositoryError: Staging or committing failed.
        """
        self._checked("add", "-A")
        self._checked("commit", "--allow-empty", "--quiet", "-m", message)
        sha = self.head()
        logger.info("Committed %s: %s", sha[:12], message)
        return sha

    def resolve(self, ref: str) -> str:
        """Full hash of the commit ``ref`` names.

        Raises:
            RepositoryError: ``ref`` is not a commit in this repository.
        """
        return self._checked("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")

    def head(self) -> str:
        return self.resolve("HEAD")

    def history(self, limit: int = 20) -> list[CommitInfo]:
        """Most recent commits first. Empty for a repository with no commits."""
        if self._git("rev-parse", "--verify", "--quiet", "HEAD").returncode != 0:
            return []
        fmt = _FIELD_SEP.join(("%H", "%h", "%cI", "%s"))
        output = self._checked("log", f"-n{limit}", f"--format={fmt}")

        commits = []
        for line in output.splitlines():
            parts = line.split(_FIELD_SEP)
            if len(parts) != 4:
                continue
            commits.append(CommitInfo(sha=parts[0], short_sha=parts[1], date=parts[2], subject=parts[3]))
        return commits
