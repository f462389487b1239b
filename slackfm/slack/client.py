"""Async client for the Slack Web API methods used to mirror status."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx

DEFAULT_API_BASE = "https://slack.com/api/"


class SlackApiError(RuntimeError):
    """Raised when Slack rejects a call or cannot be reached."""

    def __init__(
        self,
        message: str,
        *,
        error: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error = error
        self.status_code = status_code


class SlackClient:
    """Calls Slack Web API methods with a shared ``httpx.AsyncClient``."""

    def __init__(self, http_client: httpx.AsyncClient, *, api_base: str = DEFAULT_API_BASE) -> None:
        self._http = http_client
        self._api_base = api_base.rstrip("/") + "/"

    async def set_status(
        self,
        access_token: str,
        *,
        text: str = "",
        emoji: str = "",
        expiration: int = 0,
    ) -> None:
        """Set the status of the user owning ``access_token``.

        Empty ``text`` and ``emoji`` clear the status; an ``expiration`` of 0
        leaves it standing until replaced.
        """

        profile = {
            "status_text": text,
            "status_emoji": emoji,
            "status_expiration": max(0, int(expiration)),
        }
        await self.call(
            "users.profile.set",
            json={"profile": profile},
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def clear_status(self, access_token: str) -> None:
        await self.set_status(access_token, text="", emoji="", expiration=0)

    async def call(
        self,
        method: str,
        *,
        json: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Mapping[str, Any]:
        """POST to a Web API method and return the decoded ``ok`` payload."""

        url = f"{self._api_base}{method}"
        try:
            response = await self._http.post(url, json=json, data=data, headers=headers)
        except httpx.TimeoutException as exc:
            raise SlackApiError(f"Slack {method} timed out") from exc
        except httpx.HTTPError as exc:
            raise SlackApiError(f"Slack {method} failed: {exc}") from exc

        if response.status_code >= 400:
            raise SlackApiError(
                f"Slack {method} responded with status {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SlackApiError(
                f"Slack {method} returned invalid JSON", status_code=response.status_code
            ) from exc
        if not isinstance(payload, Mapping):
            raise SlackApiError(f"Slack {method} returned unexpected payload")
        if not payload.get("ok"):
            error = str(payload.get("error") or "unknown_error")
            raise SlackApiError(f"Slack {method} failed: {error}", error=error)
        return payload


__all__ = ["DEFAULT_API_BASE", "SlackApiError", "SlackClient"]
