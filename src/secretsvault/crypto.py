"""
AES-256-GCM encryption for vault values.

The master key is a single 32-byte key taken from the environment,
either as raw UTF-8 or as base64, whichever decodes to exactly 32 bytes.

Each value is sealed with a fresh 12-byte nonce and stored as three
base64 fields joined by a dot:

    <nonce>.<ciphertext>.<tag>
"""

from __future__ import annotations

import base64
import binascii
import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import ConfigError, DecryptError

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
DELIMITER = "."


def resolve_master_key(env_var: str = "SECRETS_ENC_KEY", raw: Optional[str] = None) -> bytes:
    """Resolve the 32-byte master key.

    Args:
        env_var: Environment variable holding the key.
        raw: Explicit key material; overrides the environment.

    Returns:
        The 32-byte key.

    Raises:
        ConfigError: If no candidate decodes to exactly 32 bytes.
    """
    raw_key = raw if raw is not None else os.environ.get(env_var)
    if not raw_key:
        raise ConfigError(f"{env_var} missing")

    candidates = [raw_key.encode("utf-8")]
    try:
        candidates.append(base64.b64decode(raw_key, validate=False))
    except (binascii.Error, ValueError):
        pass

    for candidate in candidates:
        if len(candidate) == KEY_LENGTH:
            return candidate

    raise ConfigError(f"{env_var} must be 32 bytes (utf-8 or base64 encoded)")


def generate_master_key() -> str:
    """Generate a new base64-encoded master key."""
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


def encrypt_value(value: Optional[str], key: bytes) -> Optional[str]:
    """Seal a plaintext value. Empty values are stored as no value."""
    if value is None or value == "":
        return None
    nonce = secrets.token_bytes(NONCE_LENGTH)
    sealed = AESGCM(key).encrypt(nonce, value.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return DELIMITER.join(
        base64.b64encode(part).decode("ascii") for part in (nonce, ciphertext, tag)
    )


def decrypt_value(payload: Optional[str], key: bytes) -> Optional[str]:
    """Open a sealed triple.

    Raises:
        DecryptError: On a malformed triple or an authentication failure.
    """
    if not payload:
        return None
    parts = payload.split(DELIMITER)
    if len(parts) != 3 or not all(parts[i] for i in (0, 2)):
        raise DecryptError("Invalid encrypted payload")
    try:
        nonce, ciphertext, tag = (base64.b64decode(p, validate=True) for p in parts)
    except (binascii.Error, ValueError) as exc:
        raise DecryptError(f"Invalid encrypted payload: {exc}") from exc
    if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
        raise DecryptError("Invalid encrypted payload")
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as exc:
        raise DecryptError("Decryption failed: authentication tag mismatch") from exc
    return plaintext.decode("utf-8")


def mask_secret(secret: Optional[str], prefix: int = 6, suffix: int = 4) -> str:
    """Render a secret for logs: first and last few characters only."""
    if not secret or not secret.strip():
        return "(empty)"
    if len(secret) <= prefix + suffix:
        return f"{secret[0]}***{secret[-1]}"
    return f"{secret[:prefix]}…{secret[-suffix:]}"
