"""FastAPI dependency providers."""

from __future__ import annotations

from fastapi import Depends, Request

from slackfm.config import AppConfig
from slackfm.errors import AuthenticationRequiredError, DependencyError
from slackfm.logging import get_logger
from slackfm.logging_events import log_event
from slackfm.services.link_service import LinkService
from slackfm.slack.signature import verify_signature

logger = get_logger(__name__)


def get_app_config(request: Request) -> AppConfig:
    config = getattr(request.app.state, "config", None)
    if not isinstance(config, AppConfig):
        raise DependencyError("Application configuration is not loaded.")
    return config


def get_link_service(request: Request) -> LinkService:
    service = getattr(request.app.state, "link_service", None)
    if not isinstance(service, LinkService):
        raise DependencyError("Link service is not ready.")
    return service


async def verified_slack_body(
    request: Request, config: AppConfig = Depends(get_app_config)
) -> bytes:
    """Return the raw request body after checking its Slack signature."""

    body = await request.body()
    if not config.slack.verify_signatures:
        return body
    valid = verify_signature(
        config.slack.signing_secret,
        timestamp=request.headers.get("X-Slack-Request-Timestamp"),
        signature=request.headers.get("X-Slack-Signature"),
        body=body,
    )
    if not valid:
        log_event(logger, "slack.signature", level="warning", status="rejected", path=request.url.path)
        raise AuthenticationRequiredError()
    return body


__all__ = ["get_app_config", "get_link_service", "verified_slack_body"]
