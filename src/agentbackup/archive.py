"""
Archive repository layout -- the vocabulary backup and restore share.

    <repo>/
    └── archives/
        └── <agent-id>/
            ├── agent.json      # ArchiveMetadata, rewritten every run
            ├── workspace/      # mirror of the agent workspace
            └── agentDir/       # sealed mirror of the agent directory's parent

The agent directory is captured together with its siblings (session
data lives next to it), so ``agentDir/`` mirrors the *parent* of the
binding's ``agentDir`` and restores back into that same parent.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from .models import ArchiveMetadata

logger = logging.getLogger("agentbackup.archive")

ARCHIVES_DIR = "archives"
METADATA_FILE = "agent.json"
WORKSPACE_DIR = "workspace"
AGENT_DIR = "agentDir"

CREDENTIAL_FILE = "auth-profiles.json"


def agent_capture_root(agent_dir: str | Path) -> Path:
    """Live directory whose contents land in ``archives/<id>/agentDir/``."""
    return Path(agent_dir).expanduser().parent


def credential_relpath(agent_dir: str | Path) -> Path:
    """Credential file location relative to the archived ``agentDir/``."""
    return Path(Path(agent_dir).name) / CREDENTIAL_FILE


class ArchiveRepository:
    """Path derivation and metadata I/O for one archive repository.

    Args:
        root: Repository root (the git working tree).
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()
        self.archives_dir = self.root / ARCHIVES_DIR

    def exists(self) -> bool:
        return self.root.is_dir()

    def has_archives(self) -> bool:
        return self.archives_dir.is_dir()

    def agent_path(self, agent_id: str) -> Path:
        """Archive directory for one agent.

        Raises:
            ValueError: The id would escape ``archives/``.
        """
        if not agent_id or agent_id in (".", "..") or "/" in agent_id or "\\" in agent_id:
            raise ValueError(f"Invalid agent id for archive path: {agent_id!r}")
        return self.archives_dir / agent_id

    def metadata_path(self, agent_id: str) -> Path:
        return self.agent_path(agent_id) / METADATA_FILE

    def workspace_path(self, agent_id: str) -> Path:
        return self.agent_path(agent_id) / WORKSPACE_DIR

    def agent_dir_path(self, agent_id: str) -> Path:
        return self.agent_path(agent_id) / AGENT_DIR

    def write_metadata(self, metadata: ArchiveMetadata) -> Path:
        """Overwrite ``agent.json`` for ``metadata.id``."""
        path = self.metadata_path(metadata.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = metadata.model_dump(by_alias=True, mode="json")
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.debug("Wrote metadata for %s", metadata.id)
        return path

    def read_metadata(self, agent_id: str) -> ArchiveMetadata:
        """Load ``agent.json`` for one agent.

        Raises:
            FileNotFoundError: No metadata was archived.
            ValueError: The file is not valid metadata JSON.
        """
        path = self.metadata_path(agent_id)
        data = json.loads(path.read_text(encoding="utf-8"))
        return ArchiveMetadata.model_validate(data)

    def list_agent_ids(self) -> list[str]:
        """Archived agent ids, sorted."""
        if not self.has_archives():
            return []
        return sorted(p.name for p in self.archives_dir.iterdir() if p.is_dir())

    def list_metadata(self) -> list[ArchiveMetadata]:
        """Metadata for every archived agent that has a readable agent.json."""
        found = []
        for agent_id in self.list_agent_ids():
            try:
                found.append(self.read_metadata(agent_id))
            except (OSError, ValueError) as exc:
                logger.warning("Unreadable metadata for %s: %s", agent_id, exc)
        return found
