"""Signed Slack callbacks: slash commands and the Events API endpoint."""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Response, status

from slackfm.api.dependencies import get_link_service, verified_slack_body
from slackfm.errors import ValidationAppError
from slackfm.logging import get_logger
from slackfm.logging_events import log_event
from slackfm.services.link_service import LinkService

__all__ = ["router_slack"]

logger = get_logger(__name__)

router_slack = APIRouter(tags=["Slack"])


def _form_value(form: dict[str, list[str]], name: str) -> str:
    values = form.get(name) or [""]
    return values[0]


@router_slack.post("/command")
async def slash_command(
    body: bytes = Depends(verified_slack_body),
    service: LinkService = Depends(get_link_service),
) -> dict[str, Any]:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationAppError("Slash command payload is not valid UTF-8.") from exc
    form = parse_qs(text, keep_blank_values=True)
    user_id = _form_value(form, "user_id")
    if not user_id:
        raise ValidationAppError("Slash command payload is missing user_id.")
    command = _form_value(form, "command")
    log_event(logger, "command.received", command=command, user_id=user_id)
    reply = await service.handle_command(command, user_id, _form_value(form, "text"))
    return {"response_type": "ephemeral", "text": reply}


@router_slack.post("/push")
async def push_event(body: bytes = Depends(verified_slack_body)) -> Response:
    try:
        payload = json.loads(body or b"{}")
    except ValueError as exc:
        raise ValidationAppError("Event payload is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise ValidationAppError("Event payload must be an object.")

    if payload.get("type") == "url_verification":
        challenge = payload.get("challenge")
        if not isinstance(challenge, str):
            raise ValidationAppError("url_verification payload is missing the challenge.")
        return Response(content=json.dumps({"challenge": challenge}), media_type="application/json")

    log_event(logger, "slack.event", type=str(payload.get("type") or "unknown"))
    return Response(status_code=status.HTTP_200_OK)
