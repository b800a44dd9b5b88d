"""Encryption utilities for sensitive data (tenant provider API keys).

Secrets are stored as versioned envelopes:

* ``ver=0`` - ``cipher`` is the base64 of the plaintext. Written when no
  ``APP_MASTER_KEY`` is configured (development only).
* ``ver=1`` - AES-256-GCM. The key is derived from ``APP_MASTER_KEY`` with
  PBKDF2-HMAC-SHA256 over a fixed salt; ``iv`` and ``tag`` are stored next to
  the ciphertext.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.config import settings
from app.core.errors import DecryptionFailed


logger = logging.getLogger(__name__)

KDF_SALT = b"rockreach-encryption-salt-v1"
KDF_ITERATIONS = 100_000
KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16

PLAINTEXT_VERSION = 0
AES_GCM_VERSION = 1


@dataclass(frozen=True)
class EncryptedSecret:
    """Envelope holding ciphertext plus what is needed to decrypt it."""

    cipher: str
    iv: Optional[str]
    tag: Optional[str]
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {"cipher": self.cipher, "iv": self.iv, "tag": self.tag, "ver": self.version}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedSecret":
        version = data.get("ver", data.get("version", AES_GCM_VERSION))
        return cls(
            cipher=data.get("cipher") or "",
            iv=data.get("iv"),
            tag=data.get("tag"),
            version=int(version),
        )


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


class CredentialVault:
    """Encrypts and decrypts secrets with a key derived from a passphrase."""

    def __init__(self, passphrase: Optional[str]):
        self._passphrase = passphrase or None
        self._key: Optional[bytes] = None
        if self._passphrase is None:
            logger.warning("APP_MASTER_KEY not set; API keys will be stored in plaintext (dev only)")

    @property
    def has_key(self) -> bool:
        return self._passphrase is not None

    def _derive_key(self) -> bytes:
        if self._key is None:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=KDF_SALT,
                iterations=KDF_ITERATIONS,
            )
            self._key = kdf.derive(self._passphrase.encode("utf-8"))
        return self._key

    def encrypt(self, plaintext: str) -> EncryptedSecret:
        if not self.has_key or not plaintext:
            return EncryptedSecret(
                cipher=_b64encode((plaintext or "").encode("utf-8")),
                iv=None,
                tag=None,
                version=PLAINTEXT_VERSION,
            )

        iv = os.urandom(IV_LENGTH)
        sealed = AESGCM(self._derive_key()).encrypt(iv, plaintext.encode("utf-8"), None)
        # AESGCM appends the tag to the ciphertext; the envelope stores it apart
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return EncryptedSecret(
            cipher=_b64encode(ciphertext),
            iv=_b64encode(iv),
            tag=_b64encode(tag),
            version=AES_GCM_VERSION,
        )

    def decrypt(self, secret: Optional[EncryptedSecret]) -> Optional[str]:
        if secret is None or not secret.cipher:
            return None

        if secret.version == PLAINTEXT_VERSION:
            try:
                return _b64decode(secret.cipher).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as exc:
                raise DecryptionFailed("Malformed plaintext credential envelope") from exc

        if secret.version != AES_GCM_VERSION:
            raise DecryptionFailed(f"Unsupported credential envelope version {secret.version}")

        if not self.has_key:
            raise DecryptionFailed("APP_MASTER_KEY is not set; cannot decrypt credential")
        if not secret.iv or not secret.tag:
            raise DecryptionFailed("Encrypted credential is missing iv or tag")

        try:
            iv = _b64decode(secret.iv)
            sealed = _b64decode(secret.cipher) + _b64decode(secret.tag)
            plaintext = AESGCM(self._derive_key()).decrypt(iv, sealed, None)
            return plaintext.decode("utf-8")
        except (InvalidTag, binascii.Error, ValueError) as exc:
            logger.error("Credential decryption failed: %s", type(exc).__name__)
            raise DecryptionFailed("Failed to decrypt secret") from exc


_vault: Optional[CredentialVault] = None


def get_vault() -> CredentialVault:
    """Return the process-wide vault built from ``APP_MASTER_KEY``."""
    global _vault
    if _vault is None:
        _vault = CredentialVault(settings.APP_MASTER_KEY)
    return _vault
