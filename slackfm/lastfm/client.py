"""Async HTTP client for the Last.fm web service."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from slackfm.config import LastfmConfig
from slackfm.logging import get_logger
from slackfm.logging_events import log_event

from .models import RecentTrack, RecentTracksResponse

logger = get_logger(__name__)

# Last.fm API error 6: "User not found" / invalid parameters.
_ERROR_INVALID_PARAMETERS = 6


class LastfmError(RuntimeError):
    """Single failure kind for transport, status, API and decode errors."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        api_error: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.api_error = api_error


class LastfmClient:
    """Thin wrapper around the ``user.*`` methods the service polls."""

    def __init__(self, config: LastfmConfig, http_client: httpx.AsyncClient) -> None:
        self._config = config
        self._http = http_client

    async def get_recent_tracks(self, username: str, *, limit: int | None = None) -> list[RecentTrack]:
        """Return the user's recent tracks, most recent first."""

        params: dict[str, Any] = {"method": "user.getrecenttracks", "user": username}
        if limit is not None:
            params["limit"] = max(1, int(limit))
        payload = await self._call(params)
        try:
            response = RecentTracksResponse.model_validate(payload)
        except ValidationError as exc:
            raise LastfmError("Last.fm returned an unexpected recent tracks payload") from exc
        return response.tracks()

    async def get_now_playing(self, username: str) -> RecentTrack | None:
        tracks = await self.get_recent_tracks(username)
        return next((track for track in tracks if track.now_playing), None)

    async def user_exists(self, username: str) -> bool:
        """Return whether ``username`` resolves; any failure counts as ``False``."""

        if not username:
            return False
        try:
            payload = await self._call({"method": "user.getinfo", "user": username})
        except LastfmError as exc:
            log_event(
                logger,
                "lastfm.user_exists",
                level="info" if exc.api_error == _ERROR_INVALID_PARAMETERS else "warning",
                username=username,
                exists=False,
                status_code=exc.status_code,
                api_error=exc.api_error,
            )
            return False
        user = payload.get("user")
        return isinstance(user, Mapping) and bool(user.get("name"))

    async def _call(self, params: Mapping[str, Any]) -> Mapping[str, Any]:
        query = {**params, "api_key": self._config.api_key, "format": "json"}
        try:
            response = await self._http.get(self._config.api_base, params=query)
        except httpx.TimeoutException as exc:
            raise LastfmError("Last.fm request timed out") from exc
        except httpx.HTTPError as exc:
            raise LastfmError(f"Last.fm request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise LastfmError(
                "Last.fm returned invalid JSON", status_code=response.status_code
            ) from exc

        if isinstance(data, Mapping) and "error" in data:
            api_error = data.get("error")
            raise LastfmError(
                str(data.get("message") or "Last.fm API error"),
                status_code=response.status_code,
                api_error=api_error if isinstance(api_error, int) else None,
            )
        if response.status_code != httpx.codes.OK:
            raise LastfmError(
                f"Last.fm responded with status {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(data, Mapping):
            raise LastfmError("Last.fm returned unexpected payload", status_code=response.status_code)
        return data


__all__ = ["LastfmClient", "LastfmError"]
