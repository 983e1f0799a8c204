"""Tests for in-place tree sealing and unsealing."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from agentbackup.cipher import HEADER_LENGTH, AuthenticationError
from agentbackup.vault import scrub_plaintext, seal_tree, unseal_tree


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    root = tmp_path / "agentDir"
    (root / "agent").mkdir(parents=True)
    (root / "agent" / "auth-profiles.json").write_text('{"token": "t"}')
    (root / "agent" / "empty.txt").write_bytes(b"")
    (root / "sessions").mkdir()
    (root / "sessions" / "s1.jsonl").write_text("{}\n")
    return root


class TestSealTree:

    def test_every_file_replaced_by_artifact(self, tree: Path) -> None:
        assert seal_tree(tree, "pw") == 3
        assert sorted(p.name for p in tree.rglob("*") if p.is_file()) == [
            "auth-profiles.json.enc", "empty.txt.enc", "s1.jsonl.enc",
        ]
        assert (tree / "agent" / "empty.txt.enc").stat().st_size == HEADER_LENGTH

    def test_artifact_inherits_mode_and_mtime(self, tree: Path) -> None:
        plain = tree / "sessions" / "s1.jsonl"
        os.chmod(plain, 0o640)
        os.utime(plain, (1_700_000_000, 1_700_000_000))

        seal_tree(tree, "pw")
        artifact = tree / "sessions" / "s1.jsonl.enc"
        assert artifact.stat().st_mode & 0o777 == 0o640
        assert int(artifact.stat().st_mtime) == 1_700_000_000

    def test_existing_artifacts_left_alone(self, tree: Path) -> None:
        seal_tree(tree, "pw")
        before = (tree / "agent" / "auth-profiles.json.enc").read_bytes()
        assert seal_tree(tree, "pw") == 0
        assert (tree / "agent" / "auth-profiles.json.enc").read_bytes() == before

    def test_symlinks_skipped(self, tree: Path) -> None:
        os.symlink("agent/auth-profiles.json", tree / "link")
        seal_tree(tree, "pw")
        assert (tree / "link").is_symlink()
        assert not (tree / "link.enc").exists()

    def test_missing_root(self, tmp_path: Path) -> None:
        assert seal_tree(tmp_path / "missing", "pw") == 0


class TestUnsealTree:

    def test_round_trip(self, tree: Path) -> None:
        seal_tree(tree, "pw")
        assert unseal_tree(tree, "pw") == 3
        assert (tree / "agent" / "auth-profiles.json").read_text() == '{"token": "t"}'
        assert (tree / "agent" / "empty.txt").read_bytes() == b""
        assert not list(tree.rglob("*.enc"))

    def test_wrong_passphrase_keeps_artifacts(self, tree: Path) -> None:
        seal_tree(tree, "pw")
        with pytest.raises(AuthenticationError):
            unseal_tree(tree, "nope")
        assert (tree / "agent" / "auth-profiles.json.enc").exists()
        assert not (tree / "agent" / "auth-profiles.json").exists()

    def test_plain_files_untouched(self, tree: Path) -> None:
        assert unseal_tree(tree, "pw") == 0
        assert (tree / "sessions" / "s1.jsonl").read_text() == "{}\n"


class TestScrubPlaintext:

    def test_only_artifacts_survive(self, tree: Path) -> None:
        seal_tree(tree, "pw")
        (tree / "agent" / "leftover.json").write_text("{}")
        os.symlink("agent", tree / "link")

        assert scrub_plaintext(tree) == 1
        assert not (tree / "agent" / "leftover.json").exists()
        assert (tree / "agent" / "auth-profiles.json.enc").exists()
        assert (tree / "link").is_symlink()

    def test_missing_root(self, tmp_path: Path) -> None:
        assert scrub_plaintext(tmp_path / "missing") == 0
