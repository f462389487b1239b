"""Turn repeated Last.fm polls into a deduplicated stream of now-playing changes."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, Union

from slackfm.logging import get_logger
from slackfm.logging_events import log_event

from .client import LastfmError
from .models import RecentTrack

logger = get_logger(__name__)


class NowPlayingSource(Protocol):
    async def get_now_playing(self, username: str) -> RecentTrack | None:
        ...


@dataclass(slots=True, frozen=True)
class TrackChanged:
    """The now-playing track changed; ``track`` is ``None`` once playback stops."""

    track: RecentTrack | None


@dataclass(slots=True, frozen=True)
class FetchFailed:
    error: LastfmError


NowPlayingEvent = Union[TrackChanged, FetchFailed]


@dataclass(slots=True)
class NowPlayingState:
    """Last snapshot observed by one stream; never persisted."""

    last: RecentTrack | None = None


def same_track(last: RecentTrack, current: RecentTrack) -> bool:
    """Compare by MusicBrainz id when ``current`` has one, by title otherwise."""

    if current.track_id:
        return current.track_id == last.track_id
    return current.title == last.title


def detect_change(state: NowPlayingState, current: RecentTrack | None) -> TrackChanged | None:
    """Fold ``current`` into ``state`` and return the event to emit, if any."""

    last = state.last
    if current is None and last is None:
        return None
    if current is None:
        state.last = None
        return TrackChanged(track=None)
    if last is None or not same_track(last, current):
        state.last = current
        return TrackChanged(track=current)
    return None


UsernameSource = Union[str, Callable[[], str]]


async def stream_now_playing(
    source: NowPlayingSource,
    username: UsernameSource,
    poll_interval: float,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncIterator[NowPlayingEvent]:
    """Poll ``source`` forever, yielding only changes in the now-playing track.

    Each tick sleeps first, so the first observation arrives one interval after
    the stream starts. Fetch failures are yielded as :class:`FetchFailed` and the
    next tick retries. ``username`` may be a callable, which is re-read on every
    tick so a renamed account is followed without restarting the stream.
    """

    state = NowPlayingState()
    while True:
        await sleep(poll_interval)
        current_username = username() if callable(username) else username
        try:
            current = await source.get_now_playing(current_username)
        except LastfmError as exc:
            log_event(
                logger,
                "lastfm.poll",
                level="warning",
                status="error",
                username=current_username,
                error=str(exc),
            )
            yield FetchFailed(error=exc)
            continue
        event = detect_change(state, current)
        if event is not None:
            yield event


__all__ = [
    "FetchFailed",
    "NowPlayingEvent",
    "NowPlayingSource",
    "NowPlayingState",
    "TrackChanged",
    "detect_change",
    "same_track",
    "stream_now_playing",
]
