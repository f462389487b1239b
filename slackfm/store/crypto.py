"""
Passphrase encryption for the credential store file.

Uses Fernet symmetric encryption with a key derived from the configured
passphrase via PBKDF2. The salt is random per store and travels in the file
header, so the same passphrase yields a different key for every store.
"""

from __future__ import annotations

import base64
import logging
import os

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

MAGIC = b"SLACKFM1"
SALT_BYTES = 16
DEFAULT_ITERATIONS = 480_000

__all__ = ["CipherError", "DEFAULT_ITERATIONS", "MAGIC", "PassphraseCipher"]


class CipherError(Exception):
    """Raised when encryption or decryption fails."""


class PassphraseCipher:
    """Encrypt and decrypt whole store blobs with one derived key."""

    def __init__(
        self,
        passphrase: str,
        *,
        salt: bytes | None = None,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> None:
        """
        Derive the Fernet key for ``passphrase``.

        Args:
            passphrase: The store passphrase.
            salt: Salt read from an existing file; a fresh one is generated
                when omitted.
            iterations: PBKDF2 iteration count.

        Raises:
            CipherError: If the passphrase is empty or key derivation fails.
        """
        if not passphrase:
            raise CipherError("a passphrase is required for store encryption")
        if salt is not None and len(salt) != SALT_BYTES:
            raise CipherError("invalid salt length")

        self._salt = salt if salt is not None else os.urandom(SALT_BYTES)
        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=32,
                salt=self._salt,
                iterations=iterations,
            )
            key = base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))
            self._fernet = Fernet(key)
        except Exception as exc:
            logger.error("Failed to derive store encryption key: %s", exc)
            raise CipherError(f"Failed to derive encryption key: {exc}") from exc

    @property
    def salt(self) -> bytes:
        return self._salt

    @classmethod
    def for_blob(
        cls,
        passphrase: str,
        blob: bytes,
        *,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> "PassphraseCipher":
        """Build a cipher whose salt matches the header of ``blob``."""

        header_size = len(MAGIC) + SALT_BYTES
        if len(blob) <= header_size or not blob.startswith(MAGIC):
            raise CipherError("not a SlackFM store file")
        salt = blob[len(MAGIC) : header_size]
        return cls(passphrase, salt=salt, iterations=iterations)

    def encrypt(self, plaintext: bytes) -> bytes:
        try:
            token = self._fernet.encrypt(plaintext)
        except Exception as exc:
            raise CipherError(f"Encryption failed: {exc}") from exc
        return MAGIC + self._salt + token

    def decrypt(self, blob: bytes) -> bytes:
        header_size = len(MAGIC) + SALT_BYTES
        if len(blob) <= header_size or not blob.startswith(MAGIC):
            raise CipherError("not a SlackFM store file")
        if blob[len(MAGIC) : header_size] != self._salt:
            raise CipherError("store salt does not match this cipher")
        try:
            return self._fernet.decrypt(blob[header_size:])
        except InvalidToken as exc:
            logger.error("Store decryption failed: invalid token or wrong passphrase")
            raise CipherError(
                "Decryption failed: store is corrupted or the passphrase changed"
            ) from exc
