"""
agentbackup -- versioned, encrypted backup of agent state.

Mirrors every agent's workspace and agent directory into a git-tracked
archive repository, encrypts the agent directory at rest, and restores
the whole fleet from that archive after a disaster.

    backup-agents backup
    backup-agents restore [--sha REF] [--confirm-auth-overwrite]
    backup-agents history
"""

__version__ = "0.1.0"

WORKSPACE_ENV = "OPENCLAW_WORKSPACE"
PASSWORD_ENV = "BACKUP_ENCRYPTION_PASSWORD"
CONFIG_FILENAME = ".backupconfig.json"
