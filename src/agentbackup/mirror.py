"""
Directory synchronizer -- mirror one tree into another.

A mirror makes the destination an exact copy of the source: contents,
permissions, timestamps and symlinks. Entries that exist only in the
destination are deleted. Every sync runs a read-only comparison first and
only touches the destination when that comparison finds a difference, so
callers can tell a real change from a no-op run.

Two implementations share the ``TreeMirror`` contract:

    LocalTreeMirror   pure Python (os / shutil), supports sealed trees
    RsyncTreeMirror   shells out to ``rsync --archive --delete``

A *sealed* destination stores every regular file as an encrypted artifact
named ``<name><suffix>``. The local mirror recognizes such an artifact as
the counterpart of the source file when the artifact's size is the source
size plus the cipher overhead and its mode and mtime match the source's.
A source file whose name already ends with the suffix, or two source
entries that would share one archived name, fail the sync with
MirrorError instead of overwriting each other.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import subprocess
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger("agentbackup.mirror")

_CHUNK = 64 * 1024


class MirrorError(Exception):
    """Raised when a comparison or mirror pass fails."""


class TreeMirror(ABC):
    """Mirror capability: preview differences, then apply them."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short implementation name."""

    @abstractmethod
    def preview(self, source: Path, dest: Path) -> list[str]:
        """Describe what a mirror would change, without changing anything.

        Returns:
            One line per difference. Empty when the trees are identical.
        """

    @abstractmethod
    def apply(self, source: Path, dest: Path) -> None:
        """Make ``dest`` an exact mirror of ``source``."""

    def sync(self, source: Path, dest: Path) -> bool:
        """Mirror ``source`` into ``dest``.

        Returns:
            True if ``dest`` had to change, False if it already matched.

        Raises:
            MirrorError: The source is missing or either pass failed.
        """
        source, dest = Path(source), Path(dest)
        if not source.is_dir():
            raise MirrorError(f"Source directory not found: {source}")

        try:
            changes = self.preview(source, dest)
        except OSError as exc:
            raise MirrorError(f"Compare failed for {source} -> {dest}: {exc}") from exc
        if not changes:
            logger.debug("%s already mirrors %s", dest, source)
            return False

        logger.debug("%d difference(s) between %s and %s", len(changes), source, dest)
        try:
            self.apply(source, dest)
        except OSError as exc:
            raise MirrorError(f"Mirror failed for {source} -> {dest}: {exc}") from exc
        return True


@dataclass
class _Plan:
    """Differences found by one comparison pass."""

    stale: list[str] = field(default_factory=list)
    updates: list[str] = field(default_factory=list)
    attrs: list[str] = field(default_factory=list)

    def describe(self) -> list[str]:
        lines = [f"*deleting {rel}" for rel in self.stale]
        lines += [f">update {rel}" for rel in self.updates]
        lines += [f".attrs {rel}" for rel in self.attrs]
        return lines


def _scan(root: Path) -> dict[str, os.stat_result]:
    """lstat every entry below ``root``, keyed by relative path."""
    entries: dict[str, os.stat_result] = {}
    if not root.is_dir():
        return entries
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = os.path.relpath(dirpath, root)
        for name in dirnames + filenames:
            rel = os.path.normpath(os.path.join(rel_dir, name))
            entries[rel] = os.lstat(os.path.join(dirpath, name))
    return entries


def _same_mtime(a: os.stat_result, b: os.stat_result, exact: bool = False) -> bool:
    # A destination with a sub-second mtime keeps nanoseconds, so compare
    # exactly; otherwise fall back to whole seconds like rsync's modify window.
    if exact and b.st_mtime_ns % 1_000_000_000:
        return a.st_mtime_ns == b.st_mtime_ns
    return a.st_mtime_ns // 1_000_000_000 == b.st_mtime_ns // 1_000_000_000


def _same_bytes(a: Path, b: Path) -> bool:
    with open(a, "rb") as fa, open(b, "rb") as fb:
        while True:
            chunk_a = fa.read(_CHUNK)
            if chunk_a != fb.read(_CHUNK):
                return False
            if not chunk_a:
                return True


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


class LocalTreeMirror(TreeMirror):
    """Pure-Python mirror.

    Args:
        sealed_suffix: When set, regular files live in the destination as
            ``<name><sealed_suffix>`` artifacts.
        sealed_overhead: Bytes an artifact adds on top of the plaintext.
    """

    def __init__(self, sealed_suffix: Optional[str] = None, sealed_overhead: int = 0):
        self.sealed_suffix = sealed_suffix
        self.sealed_overhead = sealed_overhead

    @property
    def name(self) -> str:
        return "local"

    def _dest_name(self, rel: str) -> str:
        return rel + self.sealed_suffix if self.sealed_suffix else rel

    def _file_matches(self, rel: str, src: os.stat_result, dst: os.stat_result,
                      source: Path, dest: Path) -> bool:
        if not stat.S_ISREG(dst.st_mode):
            return False
        if stat.S_IMODE(src.st_mode) != stat.S_IMODE(dst.st_mode):
            return False
        if self.sealed_suffix:
            return (
                _same_mtime(src, dst, exact=True)
                and dst.st_size == src.st_size + self.sealed_overhead
            )
        if not _same_mtime(src, dst):
            return False
        return dst.st_size == src.st_size and _same_bytes(source / rel, dest / rel)

    def _plan(self, source: Path, dest: Path) -> _Plan:
        plan = _Plan()
        src_entries = _scan(source)
        dst_entries = _scan(dest)

        if not dest.is_dir():
            plan.updates.append(".")
        elif stat.S_IMODE(source.stat().st_mode) != stat.S_IMODE(dest.stat().st_mode):
            plan.attrs.append(".")

        expected: set[str] = set()
        for rel in sorted(src_entries):
            src = src_entries[rel]
            if stat.S_ISDIR(src.st_mode):
                target = rel
            elif stat.S_ISLNK(src.st_mode):
                target = rel
            elif stat.S_ISREG(src.st_mode):
                if self.sealed_suffix and rel.endswith(self.sealed_suffix):
                    raise MirrorError(
                        f"Cannot seal {source / rel}: name already ends with "
                        f"{self.sealed_suffix}"
                    )
                target = self._dest_name(rel)
            else:
                logger.debug("Skipping special file %s", source / rel)
                continue
            if target in expected:
                raise MirrorError(
                    f"Cannot seal {source / rel}: another entry is already "
                    f"archived as {target}"
                )
            expected.add(target)

            dst = dst_entries.get(target)
            if dst is None:
                plan.updates.append(rel)
            elif stat.S_ISDIR(src.st_mode):
                if not stat.S_ISDIR(dst.st_mode):
                    plan.stale.append(target)
                    plan.updates.append(rel)
                elif stat.S_IMODE(src.st_mode) != stat.S_IMODE(dst.st_mode):
                    plan.attrs.append(rel)
            elif stat.S_ISLNK(src.st_mode):
                if not stat.S_ISLNK(dst.st_mode) or (
                    os.readlink(source / rel) != os.readlink(dest / target)
                ):
                    plan.stale.append(target)
                    plan.updates.append(rel)
            elif not self._file_matches(rel, src, dst, source, dest):
                plan.stale.append(target)
                plan.updates.append(rel)

        # Deleting a directory removes its children too; list the top only.
        extraneous = sorted(set(dst_entries) - expected)
        for rel in extraneous:
            parent = os.path.dirname(rel)
            if parent and parent in extraneous:
                continue
            plan.stale.append(rel)
        return plan

    def preview(self, source: Path, dest: Path) -> list[str]:
        return self._plan(Path(source), Path(dest)).describe()

    def apply(self, source: Path, dest: Path) -> None:
        source, dest = Path(source), Path(dest)
        plan = self._plan(source, dest)
        dest.mkdir(parents=True, exist_ok=True)

        for rel in sorted(plan.stale, reverse=True):
            target = dest / rel
            if target.exists() or target.is_symlink():
                _remove(target)

        for rel in plan.updates:
            if rel == ".":
                continue
            src_path = source / rel
            dst_path = dest / rel
            if src_path.is_symlink():
                dst_path.parent.mkdir(parents=True, exist_ok=True)
                os.symlink(os.readlink(src_path), dst_path)
            elif src_path.is_dir():
                dst_path.mkdir(parents=True, exist_ok=True)
            else:
                dst_path.parent.mkdir(parents=True, exist_ok=True)
                if dst_path.exists():
                    dst_path.unlink()
                shutil.copy2(src_path, dst_path, follow_symlinks=False)

        # Directory stats last, deepest first, so child writes do not
        # disturb the timestamps already copied onto a parent.
        for dirpath, _dirnames, _files in os.walk(source, topdown=False):
            rel = os.path.relpath(dirpath, source)
            shutil.copystat(dirpath, dest / rel)

        logger.info(
            "Mirrored %s -> %s (%d updated, %d removed)",
            source, dest, len([u for u in plan.updates if u != "."]), len(plan.stale),
        )


class RsyncTreeMirror(TreeMirror):
    """Mirror via the ``rsync`` binary (``--archive --delete``)."""

    def __init__(self, binary: str = "rsync"):
        self.binary = binary

    @property
    def name(self) -> str:
        return "rsync"

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _run(self, source: Path, dest: Path, *extra: str) -> str:
        # Trailing separator: copy the contents of source, not source itself.
        src_arg = str(source).rstrip(os.sep) + os.sep
        cmd = [self.binary, "--archive", "--delete", *extra, src_arg, str(dest)]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise MirrorError(f"Could not run {self.binary}: {exc}") from exc
        if result.returncode != 0:
            raise MirrorError(
                f"rsync failed for {source} -> {dest}: {result.stderr.strip()}"
            )
        return result.stdout

    def preview(self, source: Path, dest: Path) -> list[str]:
        output = self._run(Path(source), Path(dest), "--dry-run", "--itemize-changes")
        return [line for line in output.splitlines() if line.strip()]

    def apply(self, source: Path, dest: Path) -> None:
        Path(dest).mkdir(parents=True, exist_ok=True)
        self._run(Path(source), Path(dest))
        logger.info("Mirrored %s -> %s via rsync", source, dest)


def create_mirror(kind: str = "local") -> TreeMirror:
    """Factory for plain-tree mirrors.

    Raises:
        ValueError: Unknown mirror kind.
    """
    factories = {
        "local": LocalTreeMirror,
        "rsync": RsyncTreeMirror,
    }
    factory = factories.get(kind)
    if not factory:
        raise ValueError(f"Unsupported mirror: {kind}")
    return factory()


def sync(source: Path, dest: Path, mirror: Optional[TreeMirror] = None) -> bool:
    """Mirror ``source`` into ``dest`` and report whether anything changed."""
    return (mirror or LocalTreeMirror()).sync(source, dest)
