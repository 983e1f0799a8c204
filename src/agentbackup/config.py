"""
Run settings -- environment variables plus ``.backupconfig.json``.

    OPENCLAW_WORKSPACE           workspace root holding .backupconfig.json
    BACKUP_ENCRYPTION_PASSWORD   passphrase for the payload cipher

Both variables are required. Nothing here falls back to a default.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, SecretStr, ValidationError

from . import CONFIG_FILENAME, PASSWORD_ENV, WORKSPACE_ENV
from .models import BackupConfig

logger = logging.getLogger("agentbackup.config")


class ConfigError(Exception):
    """A run precondition is missing or invalid."""


class RunSettings(BaseModel):
    """Everything a backup or restore run needs from its environment."""

    workspace: Path
    config: BackupConfig
    passphrase: SecretStr

    @property
    def repo_path(self) -> Path:
        return Path(self.config.backup_repo_path).expanduser()


def require_env(name: str, env: Optional[Mapping[str, str]] = None) -> str:
    """Value of a required environment variable.

    Raises:
        ConfigError: The variable is unset or blank.
    """
    source = os.environ if env is None else env
    value = source.get(name, "")
    if not value.strip():
        raise ConfigError(f"{name} environment variable is not set")
    return value


def load_config(workspace: Path) -> BackupConfig:
    """Parse ``<workspace>/.backupconfig.json``.

    Raises:
        ConfigError: The file is missing or does not hold a valid config.
    """
    config_path = Path(workspace).expanduser() / CONFIG_FILENAME
    if not config_path.is_file():
        raise ConfigError(f"Backup config not found at {config_path}")

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
        return BackupConfig.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(f"Invalid backup config {config_path}: {exc}") from exc


def load_settings(env: Optional[Mapping[str, str]] = None) -> RunSettings:
    """Collect workspace, config and passphrase.

    Raises:
        ConfigError: Any required piece is missing.
    """
    workspace = Path(require_env(WORKSPACE_ENV, env)).expanduser()
    passphrase = require_env(PASSWORD_ENV, env)
    config = load_config(workspace)
    logger.debug("Loaded config from %s (repo=%s)", workspace, config.backup_repo_path)
    return RunSettings(workspace=workspace, config=config, passphrase=SecretStr(passphrase))
