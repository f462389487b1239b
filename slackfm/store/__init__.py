"""Encrypted credential store for linked users."""

from __future__ import annotations

from .crypto import DEFAULT_ITERATIONS, CipherError, PassphraseCipher
from .records import (
    Authorization,
    AuthorizedAuthorization,
    LinkedUser,
    PendingAuthorization,
    RecordHandle,
    StoreDecodeError,
    StoreError,
    StorePersistError,
    StaleRecordError,
)
from .store_fs import CredentialStore

__all__ = [
    "Authorization",
    "AuthorizedAuthorization",
    "CipherError",
    "CredentialStore",
    "DEFAULT_ITERATIONS",
    "LinkedUser",
    "PassphraseCipher",
    "PendingAuthorization",
    "RecordHandle",
    "StoreDecodeError",
    "StoreError",
    "StorePersistError",
    "StaleRecordError",
]
