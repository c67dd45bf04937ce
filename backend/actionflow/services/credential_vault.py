"""Credential vault — symmetric encryption of credential payloads at rest.

Stored format is ``"<ivHex>:<ciphertextHex>"``: AES-256-CBC with PKCS#7
padding over the compact JSON of the credential map, with a fresh random
16-byte IV per call.  Two encryptions of the same map therefore never produce
the same string.

The key is handed to the constructor once at process start (see
``actionflow.main``); nothing in this module reads configuration on its own.
The engine calls ``decrypt`` only while building a single request and never
keeps, logs or persists what it returns.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger("actionflow.vault")

IV_LENGTH = 16
KEY_LENGTH = 32
_BLOCK_BITS = algorithms.AES.block_size


class VaultError(Exception):
    """Base exception for vault failures."""


class InvalidKeyError(VaultError):
    """Raised when the encryption key is missing or has the wrong size."""


class DecryptionError(VaultError):
    """Raised when a stored blob cannot be turned back into a credential map."""


def _coerce_key(key: str | bytes) -> bytes:
    """Accept 32 raw bytes, a 32-character string, or 64 hex characters."""
    if isinstance(key, bytes):
        raw = key
    elif isinstance(key, str):
        raw = key.encode("utf-8")
        if len(key) == 2 * KEY_LENGTH:
            try:
                raw = bytes.fromhex(key)
            except ValueError:
                pass
    else:
        raise InvalidKeyError("Encryption key must be str or bytes")

    if len(raw) != KEY_LENGTH:
        raise InvalidKeyError(
            f"Encryption key must be {KEY_LENGTH} bytes (or {2 * KEY_LENGTH} hex characters); "
            f"got {len(raw)} bytes"
        )
    return raw


class CredentialVault:
    """Encrypts and decrypts credential maps with a single process-wide key."""

    def __init__(self, key: str | bytes) -> None:
        self._key = _coerce_key(key)

    def encrypt(self, plain: Mapping[str, Any]) -> str:
        if not isinstance(plain, Mapping):
            raise TypeError(f"Credential data must be a mapping, got {type(plain).__name__}")

        data = json.dumps(dict(plain), separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(data) + padder.finalize()

        iv = os.urandom(IV_LENGTH)
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, blob: str) -> dict[str, Any]:
        if not isinstance(blob, str):
            raise DecryptionError("Encrypted credential must be a string")

        iv_hex, sep, ct_hex = blob.partition(":")
        if not sep or ":" in ct_hex:
            raise DecryptionError("Encrypted credential must have the form '<ivHex>:<ciphertextHex>'")
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ct_hex)
        except ValueError as exc:
            raise DecryptionError("Encrypted credential is not valid hex") from exc
        if len(iv) != IV_LENGTH:
            raise DecryptionError(f"Initialization vector must be {IV_LENGTH} bytes, got {len(iv)}")
        if not ciphertext or len(ciphertext) % (_BLOCK_BITS // 8):
            raise DecryptionError("Ciphertext length is not a positive multiple of the block size")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            # Wrong key and truncated/tampered ciphertext both end up here.
            raise DecryptionError("Credential could not be decrypted (bad padding)") from exc

        try:
            plain = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecryptionError("Decrypted credential is not valid JSON") from exc
        if not isinstance(plain, dict):
            raise DecryptionError("Decrypted credential is not a JSON object")
        return plain


def build_vault(key: str | bytes | None) -> CredentialVault:
    """Build the process vault from the configured key; fails fast when it is absent."""
    if not key:
        raise InvalidKeyError(
            "Encryption key not found. Set CREDENTIAL_ENCRYPTION_KEY environment variable."
        )
    vault = CredentialVault(key)
    logger.info("Credential vault initialised")
    return vault


# ── Global singleton ───────────────────────────────────────────


_vault: CredentialVault | None = None


def get_vault() -> CredentialVault:
    """Return the vault configured at startup."""
    if _vault is None:
        raise InvalidKeyError("Credential vault is not configured")
    return _vault


def configure_vault(vault: CredentialVault | None) -> None:
    """Replace the global vault (used in tests and app startup)."""
    global _vault
    _vault = vault
