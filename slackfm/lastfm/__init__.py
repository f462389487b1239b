"""Last.fm client and now-playing change detection."""

from __future__ import annotations

from .client import LastfmClient, LastfmError
from .models import PLACEHOLDER_IMAGE_URL, RecentTrack
from .now_playing import (
    FetchFailed,
    NowPlayingEvent,
    NowPlayingState,
    TrackChanged,
    detect_change,
    stream_now_playing,
)

__all__ = [
    "FetchFailed",
    "LastfmClient",
    "LastfmError",
    "NowPlayingEvent",
    "NowPlayingState",
    "PLACEHOLDER_IMAGE_URL",
    "RecentTrack",
    "TrackChanged",
    "detect_change",
    "stream_now_playing",
]
