"""
Payload cipher -- passphrase-based authenticated encryption.

AES-256-GCM with a key derived by PBKDF2-HMAC-SHA256. Every call draws a
fresh salt and IV, so encrypting the same bytes twice never yields the
same artifact.

Artifact layout (all header fields stored in the clear):

    [salt 16][iv 16][tag 16][ciphertext, same length as plaintext]

The header is all a reader needs besides the passphrase.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger("agentbackup.cipher")

SALT_LENGTH = 16
IV_LENGTH = 16
TAG_LENGTH = 16
HEADER_LENGTH = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000

ENCRYPTED_SUFFIX = ".enc"


class CipherError(Exception):
    """Base class for payload cipher failures."""


class MalformedArtifactError(CipherError):
    """The artifact is too short to hold the salt/iv/tag header."""


class AuthenticationError(CipherError):
    """The tag did not verify: wrong passphrase or corrupted artifact."""


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    """Stretch a passphrase into a 256-bit key."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt_bytes(plaintext: bytes, passphrase: str) -> bytes:
    """Encrypt a buffer into a self-describing artifact.

    Args:
        plaintext: Bytes to protect. May be empty.
        passphrase: User-supplied secret.

    Returns:
        Header followed by ciphertext.
    """
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(passphrase, salt)

    sealed = AESGCM(key).encrypt(iv, plaintext, None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return salt + iv + tag + ciphertext


def decrypt_bytes(artifact: bytes, passphrase: str) -> bytes:
    """Decrypt an artifact produced by :func:`encrypt_bytes`.

    Raises:
        MalformedArtifactError: Artifact shorter than the header.
        AuthenticationError: Wrong passphrase or tampered bytes.
    """
    if len(artifact) < HEADER_LENGTH:
        raise MalformedArtifactError(
            f"Invalid encrypted artifact: {len(artifact)} bytes, "
            f"header alone is {HEADER_LENGTH}"
        )

    salt = artifact[:SALT_LENGTH]
    iv = artifact[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
    tag = artifact[SALT_LENGTH + IV_LENGTH:HEADER_LENGTH]
    ciphertext = artifact[HEADER_LENGTH:]

    key = _derive_key(passphrase, salt)
    try:
        return AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as exc:
        raise AuthenticationError(
            "Decryption failed: invalid password or corrupted data"
        ) from exc


def _write_durably(path: Path, data: bytes) -> None:
    """Write via a temp sibling and rename so readers never see a torn file."""
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def encrypt_file(input_path: Path, output_path: Path, passphrase: str) -> None:
    """Encrypt ``input_path`` into ``output_path``.

    The output only appears once it is completely written.
    """
    artifact = encrypt_bytes(Path(input_path).read_bytes(), passphrase)
    _write_durably(Path(output_path), artifact)
    logger.debug("Encrypted %s -> %s", input_path, output_path)


def decrypt_file(input_path: Path, output_path: Path, passphrase: str) -> None:
    """Decrypt ``input_path`` into ``output_path``.

    Nothing is written when decryption fails.
    """
    plaintext = decrypt_bytes(Path(input_path).read_bytes(), passphrase)
    _write_durably(Path(output_path), plaintext)
    logger.debug("Decrypted %s -> %s", input_path, output_path)
