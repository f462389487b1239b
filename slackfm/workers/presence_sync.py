"""Mirror one user's Last.fm now-playing track into their Slack status."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from slackfm.lastfm.models import RecentTrack
from slackfm.lastfm.now_playing import (
    FetchFailed,
    NowPlayingSource,
    TrackChanged,
    stream_now_playing,
)
from slackfm.logging import get_logger
from slackfm.logging_events import log_event
from slackfm.slack.client import SlackApiError, SlackClient
from slackfm.store.records import RecordHandle

logger = get_logger(__name__)

# Slack truncates status_text beyond this length.
MAX_STATUS_TEXT = 100


def format_status(track: RecentTrack) -> str:
    text = track.status_text
    if len(text) > MAX_STATUS_TEXT:
        return text[: MAX_STATUS_TEXT - 1] + "…"
    return text


class PresenceSync:
    """Factory for the per-user sync coroutine run by the supervisor."""

    def __init__(
        self,
        lastfm: NowPlayingSource,
        slack: SlackClient,
        *,
        poll_interval: float,
        status_emoji: str,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._lastfm = lastfm
        self._slack = slack
        self._poll_interval = poll_interval
        self._status_emoji = status_emoji
        self._sleep = sleep

    async def run(self, handle: RecordHandle) -> None:
        user_id = handle.user_id
        access_token = handle.snapshot().access_token
        if not access_token:
            log_event(
                logger,
                "worker.skip",
                component="worker.presence",
                user_id=user_id,
                reason="not_authorized",
            )
            return

        def current_username() -> str:
            with handle.locked() as user:
                return user.lastfm_username

        log_event(
            logger,
            "worker.start",
            component="worker.presence",
            user_id=user_id,
            username=current_username(),
            interval_s=self._poll_interval,
        )
        try:
            async for event in stream_now_playing(
                self._lastfm,
                current_username,
                self._poll_interval,
                sleep=self._sleep,
            ):
                if isinstance(event, FetchFailed):
                    continue
                if isinstance(event, TrackChanged):
                    await self._push(user_id, access_token, event.track)
        finally:
            log_event(logger, "worker.stop", component="worker.presence", user_id=user_id)

    async def _push(self, user_id: str, access_token: str, track: RecentTrack | None) -> None:
        try:
            if track is None:
                await self._slack.clear_status(access_token)
            else:
                await self._slack.set_status(
                    access_token,
                    text=format_status(track),
                    emoji=self._status_emoji,
                    expiration=0,
                )
        except SlackApiError as exc:
            log_event(
                logger,
                "slack.status",
                level="warning",
                status="error",
                user_id=user_id,
                error=exc.error or str(exc),
            )
            return
        log_event(
            logger,
            "slack.status",
            status="cleared" if track is None else "set",
            user_id=user_id,
        )


__all__ = ["MAX_STATUS_TEXT", "PresenceSync", "format_status"]
