"""Slack Web API, OAuth and request signing helpers."""

from __future__ import annotations

from .client import SlackApiError, SlackClient
from .oauth import SlackAuthorization, SlackOAuth
from .signature import compute_signature, verify_signature

__all__ = [
    "SlackApiError",
    "SlackAuthorization",
    "SlackClient",
    "SlackOAuth",
    "compute_signature",
    "verify_signature",
]
