"""Tests for archive layout, metadata I/O, and binding models."""

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from pydantic import ValidationError

from agentbackup.archive import ArchiveRepository, agent_capture_root, credential_relpath
from agentbackup.models import AgentBinding, ArchiveMetadata, current_timestamp


def _binding(**overrides) -> AgentBinding:
    record = {"id": "main", "workspace": "/w", "agentDir": "/a/main/agent"}
    record.update(overrides)
    return AgentBinding.model_validate(record)


class TestModels:

    def test_timestamp_format(self) -> None:
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", current_timestamp())

    def test_binding_accepts_camel_case(self) -> None:
        binding = _binding(identityName="Main", isDefault=True)
        assert binding.agent_dir == "/a/main/agent"
        assert binding.identity_name == "Main"
        assert binding.is_default is True
        assert binding.bindings == 0
        assert binding.routes == []

    @pytest.mark.parametrize("missing", ["id", "workspace", "agentDir"])
    def test_required_fields(self, missing: str) -> None:
        record = {"id": "main", "workspace": "/w", "agentDir": "/a"}
        del record[missing]
        with pytest.raises(ValidationError):
            AgentBinding.model_validate(record)

    def test_blank_required_field(self) -> None:
        with pytest.raises(ValidationError):
            _binding(workspace="  ")

    def test_metadata_from_binding(self) -> None:
        meta = ArchiveMetadata.from_binding(_binding(model="m"), backed_up_at="2026-01-01T00:00:00.000Z")
        assert meta.backed_up_at == "2026-01-01T00:00:00.000Z"
        assert meta.model == "m"
        assert meta.id == "main"


class TestArchiveLayout:

    def test_paths(self, tmp_path: Path) -> None:
        archive = ArchiveRepository(tmp_path)
        assert archive.metadata_path("main") == tmp_path / "archives" / "main" / "agent.json"
        assert archive.workspace_path("main") == tmp_path / "archives" / "main" / "workspace"
        assert archive.agent_dir_path("main") == tmp_path / "archives" / "main" / "agentDir"

    @pytest.mark.parametrize("agent_id", ["", ".", "..", "a/b", "..\\x"])
    def test_unsafe_ids_rejected(self, tmp_path: Path, agent_id: str) -> None:
        with pytest.raises(ValueError):
            ArchiveRepository(tmp_path).agent_path(agent_id)

    def test_capture_root_is_parent(self) -> None:
        assert agent_capture_root("/a/main/agent") == Path("/a/main")
        assert credential_relpath("/a/main/agent") == Path("agent") / "auth-profiles.json"


class TestMetadataIO:

    def test_write_uses_camel_case(self, tmp_path: Path) -> None:
        archive = ArchiveRepository(tmp_path)
        path = archive.write_metadata(ArchiveMetadata.from_binding(_binding(identityEmoji="🦀")))

        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        assert data["agentDir"] == "/a/main/agent"
        assert "backedUpAt" in data
        assert "agent_dir" not in data
        assert "🦀" in text
        assert text.endswith("}\n")

    def test_read_back(self, tmp_path: Path) -> None:
        archive = ArchiveRepository(tmp_path)
        original = ArchiveMetadata.from_binding(_binding(), backed_up_at="2026-02-02T00:00:00.000Z")
        archive.write_metadata(original)
        assert archive.read_metadata("main") == original

    def test_list_skips_unreadable(self, tmp_path: Path) -> None:
        archive = ArchiveRepository(tmp_path)
        archive.write_metadata(ArchiveMetadata.from_binding(_binding(id="b")))
        archive.write_metadata(ArchiveMetadata.from_binding(_binding(id="a")))
        (archive.archives_dir / "broken").mkdir()
        (archive.archives_dir / "broken" / "agent.json").write_text("{not json")
        (archive.archives_dir / "stray-file").write_text("x")

        assert archive.list_agent_ids() == ["a", "b", "broken"]
        assert [m.id for m in archive.list_metadata()] == ["a", "b"]

    def test_no_archives_dir(self, tmp_path: Path) -> None:
        archive = ArchiveRepository(tmp_path)
        assert not archive.has_archives()
        assert archive.list_agent_ids() == []
