"""
Client-side content encryption.

A client installation owns one key: 32 random bytes, hex encoded. Note
content is encrypted with it before it is sent to the server, so the server
only ever stores ciphertext for encrypted notes.

Fernet gives an authenticated token with a fresh IV per call. The 32 key bytes
are used directly as the Fernet key (16 bytes signing, 16 bytes AES).
"""
from __future__ import annotations
import base64
import logging
import os
import secrets
from pathlib import Path
from typing import Optional, Protocol
from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

KEY_BYTES = 32


class KeyProvider(Protocol):
    def get_key(self) -> Optional[str]: ...


def generate_key() -> str:
    return secrets.token_hex(KEY_BYTES)


def _fernet_for(key: str) -> Fernet:
    raw = bytes.fromhex(key)
    if len(raw) != KEY_BYTES:
        raise ValueError(f"Encryption key must be {KEY_BYTES} bytes, got {len(raw)}")
    return Fernet(base64.urlsafe_b64encode(raw))


def encrypt_text(text: str, key: Optional[str]) -> str:
    """Encrypt ``text``; with no key the text passes through."""
    if not key:
        return text
    return _fernet_for(key).encrypt(text.encode("utf-8")).decode("ascii")


def decrypt_text(token: str, key: Optional[str]) -> str:
    """
    Reverse ``encrypt_text``. Never raises: a wrong key, a malformed key or a
    corrupt token hands the input back unchanged.
    """
    if not token or not key:
        return token
    try:
        return _fernet_for(key).decrypt(token.encode("ascii")).decode("utf-8")
    except (InvalidToken, ValueError, UnicodeError) as e:
        logger.warning("Decryption failed: %s", type(e).__name__)
        return token


class StaticKeyProvider:
    def __init__(self, key: Optional[str]):
        self._key = key

    def get_key(self) -> Optional[str]:
        return self._key


class FileKeyProvider:
    """Key persisted in a file, generated lazily on first use."""

    def __init__(self, path: Path, create: bool = True):
        self.path = path
        self.create = create

    def get_key(self) -> Optional[str]:
        if self.path.exists():
            key = self.path.read_text(encoding="utf-8").strip()
            if key:
                return key
        if not self.create:
            return None
        key = generate_key()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(key + "\n", encoding="utf-8")
        os.chmod(self.path, 0o600)
        logger.info("Generated new encryption key at %s", self.path)
        return key

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()


class ContentCipher:
    """Encrypt/decrypt with whatever key the provider currently yields."""

    def __init__(self, key_provider: KeyProvider):
        self.key_provider = key_provider

    def encrypt(self, text: str) -> str:
        return encrypt_text(text, self.key_provider.get_key())

    def decrypt(self, token: str) -> str:
        return decrypt_text(token, self.key_provider.get_key())
