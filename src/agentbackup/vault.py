"""
The Vault -- at-rest encryption of an archived directory tree.

Sealing replaces every plaintext file with ``<name>.enc``; unsealing does
the reverse. Both walk the tree in two phases: collect the candidate files
into a list first, then transform them, so new siblings never show up in
a walk that is still running.

A plaintext file is only deleted once its artifact is fully on disk, and
an artifact is only deleted once its plaintext is. An interrupted run
leaves both copies behind, never neither.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Callable

from .cipher import ENCRYPTED_SUFFIX, decrypt_file, encrypt_file

logger = logging.getLogger("agentbackup.vault")


def _collect(root: Path, wanted: Callable[[str], bool]) -> list[Path]:
    """Regular files below ``root`` whose names satisfy ``wanted``."""
    found: list[Path] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            path = Path(dirpath) / name
            if path.is_symlink() or not path.is_file():
                continue
            if wanted(name):
                found.append(path)
    return sorted(found)


def seal_tree(root: Path, passphrase: str) -> int:
    """Encrypt every plaintext file under ``root`` in place.

    Files already carrying the ``.enc`` suffix are left alone. Each
    artifact inherits the plaintext's mode and timestamps.

    Returns:
        Number of files encrypted.

    Raises:
        CipherError / OSError: On the first file that fails; files already
            sealed stay sealed.
    """
    root = Path(root)
    if not root.is_dir():
        return 0

    pending = _collect(root, lambda name: not name.endswith(ENCRYPTED_SUFFIX))
    for plaintext in pending:
        artifact = plaintext.with_name(plaintext.name + ENCRYPTED_SUFFIX)
        encrypt_file(plaintext, artifact, passphrase)
        shutil.copystat(plaintext, artifact)
        plaintext.unlink()

    if pending:
        logger.info("Sealed %d file(s) under %s", len(pending), root)
    return len(pending)


def unseal_tree(root: Path, passphrase: str) -> int:
    """Decrypt every ``.enc`` artifact under ``root`` in place.

    Returns:
        Number of files decrypted.

    Raises:
        AuthenticationError: Wrong passphrase or a corrupted artifact.
        MalformedArtifactError: An artifact shorter than the header.
    """
    root = Path(root)
    if not root.is_dir():
        return 0

    pending = _collect(root, lambda name: name.endswith(ENCRYPTED_SUFFIX))
    for artifact in pending:
        plaintext = artifact.with_name(artifact.name[: -len(ENCRYPTED_SUFFIX)])
        decrypt_file(artifact, plaintext, passphrase)
        shutil.copystat(artifact, plaintext)
        artifact.unlink()

    if pending:
        logger.info("Unsealed %d file(s) under %s", len(pending), root)
    return len(pending)


def scrub_plaintext(root: Path) -> int:
    """Delete every regular file under ``root`` that is not an artifact.

    Used after a failed seal so that no plaintext is left behind in a
    tree that is about to be committed.

    Returns:
        Number of files removed.
    """
    root = Path(root)
    if not root.is_dir():
        return 0

    leftovers = _collect(root, lambda name: not name.endswith(ENCRYPTED_SUFFIX))
    for path in leftovers:
        path.unlink()

    if leftovers:
        logger.warning("Removed %d unsealed file(s) under %s", len(leftovers), root)
    return len(leftovers)
