"""
AES-256-GCM encryption for credentials at rest.

Ciphertext is self-describing: ``hex(iv):hex(auth_tag):hex(ciphertext)`` with a
16-byte IV and a 16-byte tag. Any malformed value or failed tag check raises
``DecryptionFailed``; tampered secrets are never returned silently.
"""

from __future__ import annotations

import hmac
import os

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sync_tree_orders.errors import DecryptionFailed

logger = structlog.get_logger(__name__)

IV_LENGTH = 16
TAG_LENGTH = 16
KEY_HEX_LENGTH = 64


def _get_key() -> bytes:
    """Load the 32-byte key from ENCRYPTION_KEY (64 hex characters)."""
    key_hex = os.getenv("ENCRYPTION_KEY", "")
    if not key_hex:
        raise ValueError("ENCRYPTION_KEY must be set in the environment")
    if len(key_hex) != KEY_HEX_LENGTH:
        raise ValueError("ENCRYPTION_KEY must be 64 hex characters (32 bytes)")
    try:
        return bytes.fromhex(key_hex)
    except ValueError as e:
        raise ValueError("ENCRYPTION_KEY must be valid hex") from e


def encrypt(plaintext: str) -> str:
    """
    Encrypt a string.

    Args:
        plaintext: Secret to encrypt

    Returns:
        str: ``iv:tag:ciphertext`` in hex
    """
    iv = os.urandom(IV_LENGTH)
    sealed = AESGCM(_get_key()).encrypt(iv, plaintext.encode("utf-8"), None)
    # cryptography appends the tag to the ciphertext
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def decrypt(value: str) -> str:
    """
    Decrypt a value produced by ``encrypt``.

    Args:
        value: ``iv:tag:ciphertext`` in hex

    Returns:
        str: The plaintext

    Raises:
        DecryptionFailed: If the format is invalid or authentication fails
    """
    parts = value.split(":") if isinstance(value, str) else []
    if len(parts) != 3:
        raise DecryptionFailed("Invalid encrypted value format")

    try:
        iv = bytes.fromhex(parts[0])
        tag = bytes.fromhex(parts[1])
        ciphertext = bytes.fromhex(parts[2])
    except ValueError as e:
        raise DecryptionFailed("Encrypted value is not valid hex") from e

    if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise DecryptionFailed("Invalid IV or authentication tag length")

    try:
        plaintext = AESGCM(_get_key()).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        logger.error("decryption_failed", reason="authentication_tag_mismatch")
        raise DecryptionFailed("Authentication failed; value was tampered or key is wrong") from e

    return plaintext.decode("utf-8")


def is_encrypted(value: str) -> bool:
    """Heuristic check that a value looks like ``encrypt`` output."""
    parts = value.split(":")
    if len(parts) != 3:
        return False
    try:
        return (
            len(bytes.fromhex(parts[0])) == IV_LENGTH
            and len(bytes.fromhex(parts[1])) == TAG_LENGTH
            and bool(parts[2])
        )
    except ValueError:
        return False


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two secrets without leaking timing information."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
