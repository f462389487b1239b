"""``slackfm-poll``: print a Last.fm user's now-playing changes to stdout."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable, Sequence
from typing import TextIO

import httpx

from slackfm.config import (
    DEFAULT_LASTFM_API_BASE,
    DEFAULT_POLL_INTERVAL_SECONDS,
    LastfmConfig,
    get_env,
)
from slackfm.lastfm.client import LastfmClient, LastfmError
from slackfm.lastfm.models import RecentTrack
from slackfm.lastfm.now_playing import FetchFailed, TrackChanged, stream_now_playing
from slackfm.logging import configure_logging


def describe(track: RecentTrack) -> str:
    if track.album:
        return f"{track.status_text} ({track.album})"
    return track.status_text


async def poll(
    config: LastfmConfig,
    username: str,
    *,
    out: TextIO,
    http_client: httpx.AsyncClient,
    max_events: int | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> int:
    """Print the most recent track, then each now-playing change.

    Runs until interrupted unless ``max_events`` bounds the number of streamed
    events.
    """

    client = LastfmClient(config, http_client)
    try:
        tracks = await client.get_recent_tracks(username, limit=1)
    except LastfmError as exc:
        print(f"Couldn't fetch recent tracks for {username}: {exc}", file=sys.stderr)
        return 1
    if tracks:
        print(f"Most recent: {describe(tracks[0])}", file=out)
    else:
        print(f"{username} has no recent tracks", file=out)

    seen = 0
    async for event in stream_now_playing(client, username, config.poll_interval_seconds, sleep=sleep):
        if isinstance(event, TrackChanged):
            if event.track is None:
                print("Nothing playing", file=out)
            else:
                print(f"Now playing: {describe(event.track)}", file=out)
        elif isinstance(event, FetchFailed):
            print(f"Fetch failed: {event.error}", file=sys.stderr)
        out.flush()
        seen += 1
        if max_events is not None and seen >= max_events:
            break
    return 0


async def _run(config: LastfmConfig, username: str, timeout: float) -> int:
    async with httpx.AsyncClient(timeout=timeout) as http_client:
        return await poll(config, username, out=sys.stdout, http_client=http_client)


def _cli(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Stream a Last.fm user's now-playing changes")
    parser.add_argument("username", help="Last.fm username to poll")
    parser.add_argument(
        "--interval",
        type=float,
        default=DEFAULT_POLL_INTERVAL_SECONDS,
        help="Seconds between polls (default: %(default)s)",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Last.fm API key (default: LASTFM_API_KEY from the environment)",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    args = parser.parse_args(argv)

    api_key = args.api_key or get_env("LASTFM_API_KEY")
    if not api_key:
        parser.error("a Last.fm API key is required (--api-key or LASTFM_API_KEY)")
    if args.interval < 1:
        parser.error("--interval must be at least 1 second")

    configure_logging(args.log_level)
    config = LastfmConfig(
        api_key=api_key,
        api_base=get_env("LASTFM_API_BASE") or DEFAULT_LASTFM_API_BASE,
        poll_interval_seconds=args.interval,
    )
    try:
        return asyncio.run(_run(config, args.username, timeout=10.0))
    except KeyboardInterrupt:
        return 0


def main() -> None:
    raise SystemExit(_cli())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
