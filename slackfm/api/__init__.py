"""HTTP routers for SlackFM."""

from __future__ import annotations

from .errors import setup_exception_handlers
from .pages import router_pages
from .slack_events import router_slack

__all__ = ["router_pages", "router_slack", "setup_exception_handlers"]
