"""Shared test fixtures for agentbackup."""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import pytest

from agentbackup import CONFIG_FILENAME, PASSWORD_ENV, WORKSPACE_ENV

PASSPHRASE = "correct horse battery staple"

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def init_git_repo(root: Path) -> Path:
    """Create an empty git repository with a local identity."""
    root.mkdir(parents=True, exist_ok=True)
    subprocess.run(["git", "init", "--quiet"], cwd=root, check=True)
    subprocess.run(["git", "config", "user.email", "backup@example.com"], cwd=root, check=True)
    subprocess.run(["git", "config", "user.name", "Backup Test"], cwd=root, check=True)
    subprocess.run(["git", "config", "commit.gpgsign", "false"], cwd=root, check=True)
    return root


def commit_count(root: Path) -> int:
    result = subprocess.run(
        ["git", "rev-list", "--count", "HEAD"],
        cwd=root, capture_output=True, text=True, check=False,
    )
    return int(result.stdout.strip()) if result.returncode == 0 else 0


@pytest.fixture
def backup_repo(tmp_path: Path) -> Path:
    """Empty git archive repository."""
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    return init_git_repo(tmp_path / "backup-repo")


@pytest.fixture
def live_agent(tmp_path: Path) -> dict:
    """One live agent on disk, laid out like the platform lays it out.

    ``<home>/workspace-main`` is the workspace; ``<home>/agents/main/agent``
    is the agentDir, with session data next to it.
    """
    home = tmp_path / "home"
    workspace = home / "workspace-main"
    agent_dir = home / "agents" / "main" / "agent"
    sessions = agent_dir.parent / "sessions"

    workspace.mkdir(parents=True)
    (workspace / "SOUL.md").write_text("# Main agent\n")
    (workspace / "memory").mkdir()
    (workspace / "memory" / "2026-01-01.md").write_text("remembered\n")

    agent_dir.mkdir(parents=True)
    (agent_dir / "models.json").write_text('{"default": "sonnet"}\n')
    sessions.mkdir()
    (sessions / "s1.jsonl").write_text('{"role": "user"}\n')

    return {
        "id": "main",
        "identityName": "Main",
        "identityEmoji": "*",
        "workspace": str(workspace),
        "agentDir": str(agent_dir),
        "model": "anthropic/sonnet",
        "bindings": 1,
        "isDefault": True,
        "routes": ["default"],
    }


@pytest.fixture
def workspace_env(tmp_path: Path, backup_repo: Path) -> dict:
    """Environment mapping pointing at a workspace whose config names ``backup_repo``."""
    workspace = tmp_path / "openclaw-workspace"
    workspace.mkdir()
    (workspace / CONFIG_FILENAME).write_text(json.dumps({"backupRepoPath": str(backup_repo)}))
    return {WORKSPACE_ENV: str(workspace), PASSWORD_ENV: PASSPHRASE}
