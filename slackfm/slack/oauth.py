"""Slack OAuth v2 helpers for user-token installs."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlencode

from slackfm.config import SlackConfig

from .client import SlackApiError, SlackClient

AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"
BOT_SCOPES = ("commands",)
USER_SCOPES = ("users.profile:read", "users.profile:write")


@dataclass(slots=True, frozen=True)
class SlackAuthorization:
    """Result of a completed authorization code exchange."""

    user_id: str
    access_token: str


class SlackOAuth:
    def __init__(self, config: SlackConfig, client: SlackClient) -> None:
        self._config = config
        self._client = client

    def authorization_url(self, state: str) -> str:
        query = {
            "client_id": self._config.client_id,
            "scope": ",".join(BOT_SCOPES),
            "user_scope": ",".join(USER_SCOPES),
            "team": self._config.team_id,
            "redirect_uri": self._config.redirect_uri,
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(query, safe=',:')}"

    async def exchange_code(self, code: str) -> SlackAuthorization:
        """Trade an authorization ``code`` for the installing user's token."""

        if not code:
            raise SlackApiError("authorization code missing", error="invalid_code")
        payload = await self._client.call(
            "oauth.v2.access",
            data={
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret,
                "code": code,
                "redirect_uri": self._config.redirect_uri,
            },
        )
        authed_user = payload.get("authed_user")
        if not isinstance(authed_user, Mapping):
            raise SlackApiError("oauth.v2.access response lacks authed_user")
        user_id = authed_user.get("id")
        access_token = authed_user.get("access_token")
        if not isinstance(user_id, str) or not isinstance(access_token, str) or not access_token:
            raise SlackApiError("oauth.v2.access response lacks a user token")
        return SlackAuthorization(user_id=user_id, access_token=access_token)


__all__ = ["AUTHORIZE_URL", "SlackAuthorization", "SlackOAuth", "USER_SCOPES"]
