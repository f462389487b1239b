"""Core models and error types for the linked-user credential store."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any, Union

__all__ = [
    "Authorization",
    "AuthorizedAuthorization",
    "LinkedUser",
    "PendingAuthorization",
    "RecordHandle",
    "StoreDecodeError",
    "StoreError",
    "StorePersistError",
    "StaleRecordError",
]


class StoreError(RuntimeError):
    """Base error for credential store failures."""


class StoreDecodeError(StoreError):
    """Raised when the store file cannot be decrypted or parsed."""


class StorePersistError(StoreError):
    """Raised when the store could not be written back to disk."""


class StaleRecordError(StoreError):
    """Raised when a handle no longer belongs to the store it came from."""


@dataclass(slots=True, frozen=True)
class PendingAuthorization:
    """The user issued ``/connect`` but has not completed the Slack OAuth flow."""

    csrf_token: str


@dataclass(slots=True, frozen=True)
class AuthorizedAuthorization:
    """The user granted access; ``access_token`` is their Slack user token."""

    access_token: str


Authorization = Union[PendingAuthorization, AuthorizedAuthorization]


@dataclass(slots=True)
class LinkedUser:
    """Joins a Slack user to the Last.fm account whose plays are mirrored."""

    lastfm_username: str
    authorization: Authorization

    @classmethod
    def pending(cls, lastfm_username: str, csrf_token: str) -> "LinkedUser":
        return cls(
            lastfm_username=lastfm_username,
            authorization=PendingAuthorization(csrf_token=csrf_token),
        )

    @property
    def access_token(self) -> str | None:
        if isinstance(self.authorization, AuthorizedAuthorization):
            return self.authorization.access_token
        return None

    @property
    def csrf_token(self) -> str | None:
        if isinstance(self.authorization, PendingAuthorization):
            return self.authorization.csrf_token
        return None

    @property
    def is_authorized(self) -> bool:
        return isinstance(self.authorization, AuthorizedAuthorization)

    def promote(self, access_token: str) -> None:
        """Move the record from pending to authorized.

        A record never returns to the pending state; promoting an authorized
        record is rejected.
        """

        if self.is_authorized:
            raise ValueError("record is already authorized")
        if not access_token:
            raise ValueError("access token must be provided")
        self.authorization = AuthorizedAuthorization(access_token=access_token)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.authorization, AuthorizedAuthorization):
            authorization = {"kind": "authorized", "access_token": self.authorization.access_token}
        else:
            authorization = {"kind": "pending", "csrf_token": self.authorization.csrf_token}
        return {"lastfm_username": self.lastfm_username, "authorization": authorization}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "LinkedUser":
        username = payload.get("lastfm_username")
        raw_auth = payload.get("authorization")
        if not isinstance(username, str) or not isinstance(raw_auth, Mapping):
            raise ValueError("invalid linked user record")
        kind = raw_auth.get("kind")
        authorization: Authorization
        if kind == "authorized" and isinstance(raw_auth.get("access_token"), str):
            authorization = AuthorizedAuthorization(access_token=raw_auth["access_token"])
        elif kind == "pending" and isinstance(raw_auth.get("csrf_token"), str):
            authorization = PendingAuthorization(csrf_token=raw_auth["csrf_token"])
        else:
            raise ValueError(f"invalid authorization kind: {kind!r}")
        return cls(lastfm_username=username, authorization=authorization)


class RecordHandle:
    """Shared, independently lockable view of one :class:`LinkedUser`.

    The store and at most one running worker hold the same handle. The lock is
    a plain thread lock and must never be held across an ``await``.
    """

    __slots__ = ("_user_id", "_user", "_lock")

    def __init__(self, user_id: str, user: LinkedUser) -> None:
        self._user_id = user_id
        self._user = user
        self._lock = Lock()

    @property
    def user_id(self) -> str:
        return self._user_id

    @contextmanager
    def locked(self) -> Iterator[LinkedUser]:
        with self._lock:
            yield self._user

    def snapshot(self) -> LinkedUser:
        """Return a detached copy of the current record."""

        with self._lock:
            return replace(self._user)

    def __repr__(self) -> str:
        return f"RecordHandle(user_id={self._user_id!r})"
