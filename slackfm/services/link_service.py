"""Links Slack users to Last.fm accounts and keeps their sync workers running."""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Callable
from dataclasses import dataclass

from slackfm.lastfm.client import LastfmClient
from slackfm.logging import get_logger
from slackfm.logging_events import fingerprint, log_event
from slackfm.slack.client import SlackApiError, SlackClient
from slackfm.slack.oauth import SlackOAuth
from slackfm.store.records import (
    LinkedUser,
    RecordHandle,
    StaleRecordError,
    StorePersistError,
)
from slackfm.store.store_fs import CredentialStore
from slackfm.workers.presence_sync import PresenceSync
from slackfm.workers.supervisor import TaskSupervisor

logger = get_logger(__name__)

CONNECT_COMMAND = "/connect"
DISCONNECT_COMMAND = "/disconnect"

NO_USERNAME = "No username found. Please give one"
UNKNOWN_COMMAND = "Received unknown command"
USERNAME_UPDATED = "Updated Last.fm username"
SAVE_FAILED = "Couldn't save your settings, please try again later"
DISCONNECTED = "Disconnected your Last.fm account"
NOT_CONNECTED = "You haven't connected a Last.fm account"
CSRF_MISMATCH = (
    "CSRF couldn't be linked to a user. Theres a middleman at play or I didn't save properly"
)
EXCHANGE_FAILED = "Couldn't complete Slack authorization"
USER_MISMATCH = "This authorization link was issued to a different Slack user"
AUTHENTICATED = "Authenticated!"
AUTHENTICATED_UNSAVED = (
    "Authenticated! I couldn't save it though, so you may need to connect again after a restart"
)


def authorization_prompt(url: str) -> str:
    return f"Please visit {url} to allow SlackFM to access and modify your profile/status"


def unknown_lastfm_user(username: str) -> str:
    return f"Couldn't find the Last.fm user {username}"


@dataclass(slots=True, frozen=True)
class AuthorizationResult:
    ok: bool
    message: str


class LinkService:
    """Entry point for slash commands and the OAuth redirect."""

    def __init__(
        self,
        *,
        store: CredentialStore,
        supervisor: TaskSupervisor,
        lastfm: LastfmClient,
        slack: SlackClient,
        oauth: SlackOAuth,
        presence: PresenceSync,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._supervisor = supervisor
        self._lastfm = lastfm
        self._slack = slack
        self._oauth = oauth
        self._presence = presence
        self._token_factory = token_factory or (lambda: secrets.token_urlsafe(32))

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def supervisor(self) -> TaskSupervisor:
        return self._supervisor

    async def handle_command(self, command: str, user_id: str, text: str) -> str:
        if command == CONNECT_COMMAND:
            return await self.connect(user_id, text)
        if command == DISCONNECT_COMMAND:
            return await self.disconnect(user_id)
        log_event(logger, "command.unknown", level="warning", command=command, user_id=user_id)
        return UNKNOWN_COMMAND

    async def connect(self, user_id: str, text: str) -> str:
        """Link ``user_id`` to the Last.fm account named by the first word of ``text``."""

        words = text.split()
        if not words:
            return NO_USERNAME
        username = words[0]

        if not await self._lastfm.user_exists(username):
            log_event(logger, "link.connect", status="unknown_account", user_id=user_id)
            return unknown_lastfm_user(username)

        handle = await self._store.get(user_id)
        if handle is not None and handle.snapshot().is_authorized:
            return await self._update_username(handle, username)

        state = self._token_factory()
        try:
            await self._store.add(user_id, LinkedUser.pending(username, state))
        except StorePersistError:
            return SAVE_FAILED
        log_event(
            logger,
            "link.connect",
            status="pending",
            user_id=user_id,
            state_fingerprint=fingerprint(state),
        )
        return authorization_prompt(self._oauth.authorization_url(state))

    async def _update_username(self, handle: RecordHandle, username: str) -> str:
        def rename(user: LinkedUser) -> None:
            user.lastfm_username = username

        try:
            await self._store.update(handle, rename)
        except StaleRecordError:
            return NOT_CONNECTED
        except StorePersistError:
            return SAVE_FAILED
        self._spawn(handle)
        log_event(logger, "link.connect", status="renamed", user_id=handle.user_id)
        return USERNAME_UPDATED

    async def disconnect(self, user_id: str) -> str:
        """Stop mirroring for ``user_id`` and forget their record."""

        self._supervisor.cancel(user_id)
        handle = await self._store.get(user_id)
        if handle is None:
            return NOT_CONNECTED
        try:
            await self._store.remove(user_id)
        except StorePersistError:
            return SAVE_FAILED
        finally:
            # Also stops a worker spawned by a callback that finished first.
            self._supervisor.cancel(user_id)
            access_token = handle.snapshot().access_token
            if access_token:
                await self._clear_status(user_id, access_token)
        log_event(logger, "link.disconnect", user_id=user_id)
        return DISCONNECTED

    async def authorization_callback(self, code: str, state: str) -> AuthorizationResult:
        """Complete the OAuth flow started by :meth:`connect`."""

        handle = await self._store.find_by_pending_token(state)
        if handle is None:
            log_event(
                logger,
                "oauth.callback",
                level="warning",
                status="unknown_state",
                state_fingerprint=fingerprint(state) if state else None,
            )
            return AuthorizationResult(ok=False, message=CSRF_MISMATCH)

        try:
            authorization = await self._oauth.exchange_code(code)
        except SlackApiError as exc:
            log_event(
                logger,
                "oauth.callback",
                level="warning",
                status="exchange_failed",
                user_id=handle.user_id,
                error=exc.error or str(exc),
            )
            return AuthorizationResult(ok=False, message=EXCHANGE_FAILED)

        if authorization.user_id != handle.user_id:
            log_event(
                logger,
                "oauth.callback",
                level="warning",
                status="user_mismatch",
                user_id=handle.user_id,
                authed_user_id=authorization.user_id,
            )
            return AuthorizationResult(ok=False, message=USER_MISMATCH)

        message = AUTHENTICATED
        try:
            await self._store.update(handle, lambda user: user.promote(authorization.access_token))
        except (StaleRecordError, ValueError):
            # The record was promoted, removed or replaced during the exchange.
            log_event(
                logger,
                "oauth.callback",
                level="warning",
                status="stale_state",
                user_id=handle.user_id,
            )
            return AuthorizationResult(ok=False, message=CSRF_MISMATCH)
        except StorePersistError:
            message = AUTHENTICATED_UNSAVED

        self._spawn(handle)
        log_event(logger, "oauth.callback", status="authorized", user_id=handle.user_id)
        return AuthorizationResult(ok=True, message=message)

    async def reconcile_on_startup(self) -> int:
        """Drop authorized users whose Last.fm account vanished, then start the rest.

        Returns the number of workers started.
        """

        authorized = [
            (user_id, handle)
            for user_id, handle in await self._store.iterate()
            if handle.snapshot().is_authorized
        ]
        exists = await asyncio.gather(
            *(self._lastfm.user_exists(handle.snapshot().lastfm_username) for _, handle in authorized)
        )
        stale = [user_id for (user_id, _), found in zip(authorized, exists) if not found]
        if stale:
            try:
                await self._store.remove_many(stale)
            except StorePersistError:
                log_event(logger, "link.reconcile", level="error", status="persist_failed")
            else:
                log_event(logger, "link.reconcile", status="pruned", removed=len(stale))

        started = 0
        for (user_id, handle), found in zip(authorized, exists):
            if found:
                self._spawn(handle)
                started += 1
        log_event(logger, "link.reconcile", status="ok", started=started)
        return started

    def _spawn(self, handle: RecordHandle) -> None:
        self._supervisor.spawn(handle.user_id, self._presence.run(handle))

    async def _clear_status(self, user_id: str, access_token: str) -> None:
        try:
            await self._slack.clear_status(access_token)
        except SlackApiError as exc:
            log_event(
                logger,
                "slack.status",
                level="warning",
                status="error",
                user_id=user_id,
                error=exc.error or str(exc),
            )


__all__ = [
    "AUTHENTICATED",
    "AuthorizationResult",
    "CONNECT_COMMAND",
    "CSRF_MISMATCH",
    "DISCONNECT_COMMAND",
    "EXCHANGE_FAILED",
    "LinkService",
    "NO_USERNAME",
    "UNKNOWN_COMMAND",
    "USERNAME_UPDATED",
    "authorization_prompt",
]
