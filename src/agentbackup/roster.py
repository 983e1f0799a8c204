"""
Agent roster -- where the list of agents to back up comes from.

The default source is the agent platform's own CLI
(``openclaw agents list --bindings --json``). Records are validated once
here; everything downstream works with ``AgentBinding`` instances only.
"""

from __future__ import annotations

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from .models import AgentBinding

logger = logging.getLogger("agentbackup.roster")

DEFAULT_ROSTER_COMMAND = ["openclaw", "agents", "list", "--bindings", "--json"]


class DiscoveryError(Exception):
    """Raised when the roster source cannot produce a binding list."""


class AgentRoster(ABC):
    """Source of raw agent binding records."""

    @abstractmethod
    def list_agents(self) -> list[Any]:
        """Return the raw binding records, in roster order.

        Raises:
            DiscoveryError: The roster is unavailable or unparseable.
        """


class CommandRoster(AgentRoster):
    """Runs an external command that prints a JSON array of bindings."""

    def __init__(self, command: Optional[list[str]] = None, timeout: int = 60):
        self.command = list(command or DEFAULT_ROSTER_COMMAND)
        self.timeout = timeout

    def list_agents(self) -> list[Any]:
        try:
            result = subprocess.run(
                self.command, capture_output=True, text=True,
                timeout=self.timeout, check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise DiscoveryError(f"Failed to list agents: {exc}") from exc

        if result.returncode != 0:
            raise DiscoveryError(
                f"Failed to list agents: {' '.join(self.command)} exited "
                f"{result.returncode}: {result.stderr.strip()}"
            )

        try:
            records = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise DiscoveryError(f"Failed to list agents: invalid JSON ({exc})") from exc

        if not isinstance(records, list):
            raise DiscoveryError("Failed to list agents: expected a JSON array")
        return records


class StaticRoster(AgentRoster):
    """Fixed in-memory roster."""

    def __init__(self, records: Iterable[Any]):
        self.records = list(records)

    def list_agents(self) -> list[Any]:
        return list(self.records)


def validate_bindings(records: Iterable[Any]) -> list[AgentBinding]:
    """Keep the records that carry an id, a workspace and an agentDir.

    Invalid records and repeated ids are skipped with a warning; this
    filter never fails the run.
    """
    valid: list[AgentBinding] = []
    seen: set[str] = set()
    for record in records:
        label = record.get("id", "<no id>") if isinstance(record, dict) else repr(record)
        if not isinstance(record, dict):
            logger.warning("Agent %s is not a binding record, skipping", label)
            continue
        try:
            binding = AgentBinding.model_validate(record)
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            logger.warning(
                "Agent %s failed validation (%s), skipping", label, ", ".join(fields),
            )
            continue
        if binding.id in seen:
            logger.warning("Agent %s listed twice, skipping duplicate", binding.id)
            continue
        seen.add(binding.id)
        valid.append(binding)
    return valid
