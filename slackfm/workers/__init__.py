"""Background workers and their supervisor."""

from __future__ import annotations

from .presence_sync import PresenceSync, format_status
from .supervisor import TaskSupervisor

__all__ = ["PresenceSync", "TaskSupervisor", "format_status"]
