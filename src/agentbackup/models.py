"""
Data models -- agent bindings, archive metadata, and run outcomes.

Roster output and the persisted agent.json both use camelCase keys.
The models expose snake_case attributes and accept either spelling.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def current_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AgentBinding(BaseModel):
    """One logical agent as reported by the roster source.

    Only ``id``, ``workspace`` and ``agent_dir`` are required; a record
    missing any of them is rejected by ``roster.validate_bindings``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    identity_name: Optional[str] = Field(default=None, alias="identityName")
    identity_emoji: Optional[str] = Field(default=None, alias="identityEmoji")
    identity_source: Optional[str] = Field(default=None, alias="identitySource")
    workspace: str
    agent_dir: str = Field(alias="agentDir")
    model: Optional[str] = None
    bindings: int = 0
    is_default: bool = Field(default=False, alias="isDefault")
    routes: list[str] = Field(default_factory=list)

    @field_validator("id", "workspace", "agent_dir")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("bindings", "is_default", "routes", mode="before")
    @classmethod
    def _null_as_default(cls, value, info):
        # Roster output uses null for "not set"; only the three paths above
        # can make a binding invalid.
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


class ArchiveMetadata(AgentBinding):
    """Contents of ``archives/<id>/agent.json``.

    ``workspace`` and ``agent_dir`` are the authoritative restore targets.
    """

    backed_up_at: str = Field(alias="backedUpAt")

    @classmethod
    def from_binding(cls, binding: AgentBinding, backed_up_at: Optional[str] = None) -> ArchiveMetadata:
        """Stamp a binding with the time it was checked."""
        return cls(
            **binding.model_dump(),
            backed_up_at=backed_up_at or current_timestamp(),
        )


class BackupConfig(BaseModel):
    """Contents of ``.backupconfig.json``."""

    model_config = ConfigDict(populate_by_name=True)

    backup_repo_path: str = Field(alias="backupRepoPath")
    roster_command: list[str] = Field(
        default_factory=lambda: ["openclaw", "agents", "list", "--bindings", "--json"],
        alias="rosterCommand",
    )
    mirror: str = "local"

    @field_validator("backup_repo_path")
    @classmethod
    def _repo_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be a non-empty path")
        return value

    @field_validator("mirror")
    @classmethod
    def _known_mirror(cls, value: str) -> str:
        if value not in ("local", "rsync"):
            raise ValueError(f"unknown mirror {value!r} (expected 'local' or 'rsync')")
        return value


class BackupChange(BaseModel):
    """Per-agent outcome of one backup run."""

    agent_id: str
    workspace_changed: bool = False
    agent_dir_changed: bool = False
    error: Optional[str] = None

    @property
    def changed(self) -> bool:
        return self.workspace_changed or self.agent_dir_changed


class BackupResult(BaseModel):
    """Run-level outcome of a backup."""

    success: bool
    message: str
    agents_processed: int = 0
    changes: list[BackupChange] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def changed_count(self) -> int:
        """Agents with at least one changed subtree."""
        return sum(1 for c in self.changes if c.changed)


class RestoreResult(BaseModel):
    """Run-level outcome of a restore."""

    success: bool
    message: str
    agents_restored: int = 0
    error: Optional[str] = None
    auth_overwrite_warning: bool = False
