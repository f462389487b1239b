"""Encrypted, filesystem-backed store of linked Slack users."""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from slackfm.logging import get_logger
from slackfm.logging_events import log_event

from .crypto import DEFAULT_ITERATIONS, CipherError, PassphraseCipher
from .records import (
    LinkedUser,
    RecordHandle,
    StoreDecodeError,
    StaleRecordError,
    StorePersistError,
)

__all__ = ["CredentialStore"]

_JSON_VERSION = 1

logger = get_logger(__name__)


class CredentialStore:
    """Map of Slack user id to :class:`RecordHandle`, rewritten whole on every change.

    Structural changes and full scans serialise through one ``asyncio.Lock``.
    Each record carries its own lock so workers can read their record without
    contending with unrelated users. A failed write leaves the in-memory state
    as mutated and flags the store as ``dirty`` until the next successful write.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        cipher: PassphraseCipher,
        users: Mapping[str, LinkedUser] | None = None,
    ) -> None:
        self._path = Path(path)
        self._cipher = cipher
        self._records: dict[str, RecordHandle] = {
            user_id: RecordHandle(user_id, user) for user_id, user in (users or {}).items()
        }
        self._lock = asyncio.Lock()
        self._dirty = False

    @classmethod
    def load(
        cls,
        path: str | os.PathLike[str],
        passphrase: str,
        *,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> "CredentialStore":
        """Open the store at ``path``.

        A missing file yields an empty store. An existing file that cannot be
        decrypted or parsed raises :class:`StoreDecodeError`.
        """

        store_path = Path(path)
        try:
            blob = store_path.read_bytes()
        except FileNotFoundError:
            try:
                cipher = PassphraseCipher(passphrase, iterations=iterations)
            except CipherError as exc:
                raise StoreDecodeError(str(exc)) from exc
            log_event(logger, "store.created", path=str(store_path))
            return cls(store_path, cipher)
        except OSError as exc:
            raise StoreDecodeError(f"unable to read store file {store_path}: {exc}") from exc

        try:
            cipher = PassphraseCipher.for_blob(passphrase, blob, iterations=iterations)
            plaintext = cipher.decrypt(blob)
        except CipherError as exc:
            raise StoreDecodeError(str(exc)) from exc

        users = _decode_users(plaintext)
        log_event(logger, "store.loaded", path=str(store_path), users=len(users))
        return cls(store_path, cipher, users)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        """Whether the in-memory state has diverged from disk after a failed write."""

        return self._dirty

    def __len__(self) -> int:
        return len(self._records)

    @property
    def is_empty(self) -> bool:
        return not self._records

    async def persist(self) -> None:
        async with self._lock:
            await self._persist_locked()

    async def add(self, user_id: str, user: LinkedUser) -> RecordHandle:
        """Insert or replace the record for ``user_id`` and persist."""

        if not user_id:
            raise ValueError("user_id must be provided")
        async with self._lock:
            handle = RecordHandle(user_id, user)
            self._records[user_id] = handle
            await self._persist_locked()
            return handle

    async def remove(self, user_id: str) -> LinkedUser | None:
        async with self._lock:
            handle = self._records.pop(user_id, None)
            if handle is None:
                return None
            await self._persist_locked()
            return handle.snapshot()

    async def remove_many(self, user_ids: Iterable[str]) -> list[str]:
        """Drop every listed user with a single write; returns the ids removed."""

        async with self._lock:
            removed = [
                user_id for user_id in user_ids if self._records.pop(user_id, None) is not None
            ]
            if removed:
                await self._persist_locked()
            return removed

    async def get(self, user_id: str) -> RecordHandle | None:
        async with self._lock:
            return self._records.get(user_id)

    async def find_by_pending_token(self, csrf_token: str) -> RecordHandle | None:
        """Return the record still waiting on ``csrf_token``, if any."""

        if not csrf_token:
            return None
        async with self._lock:
            for handle in self._records.values():
                with handle.locked() as user:
                    if user.csrf_token == csrf_token:
                        return handle
        return None

    async def iterate(self) -> list[tuple[str, RecordHandle]]:
        async with self._lock:
            return list(self._records.items())

    async def update(self, handle: RecordHandle, mutation: Callable[[LinkedUser], None]) -> None:
        """Apply ``mutation`` to one record under its own lock, then persist.

        Raises :class:`StaleRecordError` without mutating when ``handle`` was
        removed or replaced since it was obtained.
        """

        async with self._lock:
            if self._records.get(handle.user_id) is not handle:
                raise StaleRecordError(f"record for user {handle.user_id} was removed or replaced")
            with handle.locked() as user:
                mutation(user)
            await self._persist_locked()

    async def _persist_locked(self) -> None:
        payload = self._snapshot_payload()
        try:
            plaintext = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
            blob = self._cipher.encrypt(plaintext)
            await asyncio.to_thread(_write_file, self._path, blob)
        except (CipherError, OSError, TypeError, ValueError) as exc:
            self._dirty = True
            log_event(
                logger,
                "store.persist",
                level="error",
                status="error",
                path=str(self._path),
                error=type(exc).__name__,
            )
            raise StorePersistError(f"failed to persist store to {self._path}: {exc}") from exc
        self._dirty = False
        log_event(
            logger,
            "store.persist",
            level="debug",
            status="ok",
            users=len(payload["users"]),
        )

    def _snapshot_payload(self) -> dict[str, Any]:
        users: dict[str, Any] = {}
        for user_id, handle in self._records.items():
            with handle.locked() as user:
                users[user_id] = user.to_dict()
        return {"version": _JSON_VERSION, "users": users}


def _decode_users(plaintext: bytes) -> dict[str, LinkedUser]:
    try:
        payload = json.loads(plaintext.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StoreDecodeError("store contents are not valid JSON") from exc
    if not isinstance(payload, Mapping) or payload.get("version") != _JSON_VERSION:
        raise StoreDecodeError("unsupported store format")
    raw_users = payload.get("users")
    if not isinstance(raw_users, Mapping):
        raise StoreDecodeError("store is missing the users map")
    users: dict[str, LinkedUser] = {}
    for user_id, record in raw_users.items():
        if not isinstance(record, Mapping):
            raise StoreDecodeError(f"invalid record for user {user_id}")
        try:
            users[str(user_id)] = LinkedUser.from_dict(record)
        except ValueError as exc:
            raise StoreDecodeError(f"invalid record for user {user_id}: {exc}") from exc
    return users


def _write_file(path: Path, blob: bytes) -> None:
    tmp_dir = path.parent
    tmp_dir.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=tmp_dir,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(blob)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except Exception:
        try:
            tmp_path.unlink(missing_ok=True)
        finally:
            raise
