"""Scheduled backups via a systemd user timer.

Installs ``agentbackup.service`` (oneshot, runs ``backup-agents backup``)
and ``agentbackup.timer``. Uses user-level systemd (systemctl --user) so
no root is needed. systemd never starts a oneshot unit that is still
running, so scheduled runs cannot overlap.

The passphrase stays out of the unit files: the service reads it from an
``EnvironmentFile`` that the user creates with mode 0600.

Usage:
    from agentbackup.systemd import install_timer, timer_status
    install_timer(workspace=Path("~/.openclaw/workspace"), interval="hourly")
    status = timer_status()
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("agentbackup.systemd")

SERVICE_NAME = "agentbackup.service"
TIMER_NAME = "agentbackup.timer"

SYSTEMD_USER_DIR = Path.home() / ".config" / "systemd" / "user"
DEFAULT_ENV_FILE = "%h/.config/agentbackup/env"


@dataclass
class TimerStatus:
    """Status of the backup timer.

    Attributes:
        installed: Whether both unit files exist.
        enabled: Whether the timer starts at login.
        active: Whether the timer is currently scheduled.
        last_trigger: When the timer last fired.
        next_elapse: When it fires next.
        last_result: Result of the last service run.
    """

    installed: bool = False
    enabled: bool = False
    active: bool = False
    last_trigger: str = ""
    next_elapse: str = ""
    last_result: str = ""


def _run(cmd: list[str], check: bool = False) -> subprocess.CompletedProcess:
    """Run a command and capture output.

    Args:
        cmd: Command and arguments.
        check: Raise on non-zero exit.

    Returns:
        CompletedProcess with stdout/stderr.
    """
    return subprocess.run(
        cmd, capture_output=True, text=True, timeout=30, check=check,
    )


def _systemctl(*args: str) -> subprocess.CompletedProcess:
    """Run a systemctl --user command.

    A missing or hung systemctl is reported as a failed result, not raised.
    """
    cmd = ["systemctl", "--user", *args]
    try:
        return _run(cmd)
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.warning("systemctl %s failed: %s", " ".join(args), exc)
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr=str(exc))


def systemd_available() -> bool:
    """Check if a systemd user session is available."""
    try:
        result = _run(["systemctl", "--user", "--version"])
    except (OSError, subprocess.TimeoutExpired):
        return False
    return result.returncode == 0


def generate_service_unit(
    workspace: Path,
    exec_path: Optional[str] = None,
    env_file: str = DEFAULT_ENV_FILE,
) -> str:
    """Service unit content for one backup run.

    Args:
        workspace: Value for OPENCLAW_WORKSPACE.
        exec_path: Override the backup-agents executable.
        env_file: File providing BACKUP_ENCRYPTION_PASSWORD.
    """
    exec_cmd = exec_path or "backup-agents"
    return f"""[Unit]
Description=Versioned encrypted backup of agent state
After=network-online.target

[Service]
Type=oneshot
ExecStart={exec_cmd} backup
Environment=OPENCLAW_WORKSPACE={workspace}
EnvironmentFile={env_file}
Environment=PYTHONUNBUFFERED=1
Nice=10
IOSchedulingClass=idle
NoNewPrivileges=true
PrivateTmp=true
"""


def generate_timer_unit(interval: str = "hourly") -> str:
    """Timer unit content.

    Args:
        interval: Any systemd OnCalendar expression.
    """
    return f"""[Unit]
Description=Scheduled agent state backup

[Timer]
OnCalendar={interval}
Persistent=true
RandomizedDelaySec=60
Unit={SERVICE_NAME}

[Install]
WantedBy=timers.target
"""


def install_timer(
    workspace: Path,
    interval: str = "hourly",
    unit_dir: Optional[Path] = None,
    exec_path: Optional[str] = None,
    enable: bool = True,
) -> dict:
    """Write both units, reload systemd, and optionally enable the timer.

    Returns:
        dict: Result with 'installed', 'enabled' bools and 'unit_dir'.
    """
    target = unit_dir or SYSTEMD_USER_DIR
    target.mkdir(parents=True, exist_ok=True)

    (target / SERVICE_NAME).write_text(
        generate_service_unit(Path(workspace).expanduser(), exec_path), encoding="utf-8",
    )
    (target / TIMER_NAME).write_text(generate_timer_unit(interval), encoding="utf-8")
    logger.info("Installed %s and %s to %s", SERVICE_NAME, TIMER_NAME, target)

    result = {"installed": True, "enabled": False, "unit_dir": str(target)}
    _systemctl("daemon-reload")

    if enable:
        r = _systemctl("enable", "--now", TIMER_NAME)
        result["enabled"] = r.returncode == 0
        if r.returncode != 0:
            logger.warning("Could not enable %s: %s", TIMER_NAME, r.stderr.strip())

    return result


def uninstall_timer(unit_dir: Optional[Path] = None) -> dict:
    """Stop and disable the timer and remove both unit files.

    Returns:
        dict: Result with 'disabled' and 'removed' bools.
    """
    target = unit_dir or SYSTEMD_USER_DIR
    r = _systemctl("disable", "--now", TIMER_NAME)
    result = {"disabled": r.returncode == 0, "removed": False}

    removed = 0
    for name in (TIMER_NAME, SERVICE_NAME):
        unit_path = target / name
        if unit_path.exists():
            unit_path.unlink()
            removed += 1

    _systemctl("daemon-reload")
    result["removed"] = removed > 0
    logger.info("Removed %d unit file(s) from %s", removed, target)
    return result


def timer_status(unit_dir: Optional[Path] = None) -> TimerStatus:
    """Query the timer and the result of the last run."""
    target = unit_dir or SYSTEMD_USER_DIR
    status = TimerStatus()
    status.installed = (target / TIMER_NAME).exists() and (target / SERVICE_NAME).exists()
    if not status.installed:
        return status

    r = _systemctl("is-enabled", TIMER_NAME)
    status.enabled = r.stdout.strip() == "enabled"

    r = _systemctl("is-active", TIMER_NAME)
    status.active = r.stdout.strip() == "active"

    r = _systemctl("show", TIMER_NAME, "--property=LastTriggerUSec,NextElapseUSecRealtime")
    for line in r.stdout.strip().splitlines():
        key, _, value = line.partition("=")
        if key == "LastTriggerUSec":
            status.last_trigger = value
        elif key == "NextElapseUSecRealtime":
            status.next_elapse = value

    r = _systemctl("show", SERVICE_NAME, "--property=Result")
    key, _, value = r.stdout.strip().partition("=")
    if key == "Result":
        status.last_result = value

    return status
