"""Keeps at most one background task alive per Slack user."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from slackfm.logging import get_logger
from slackfm.logging_events import log_event

logger = get_logger(__name__)


class TaskSupervisor:
    """Registry of running per-user tasks.

    A task removes its own entry when it finishes, whether it returned, raised
    or was cancelled. Finished tasks are never restarted automatically.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def spawn(self, user_id: str, worker: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        """Start ``worker`` for ``user_id``, cancelling any task already running for it."""

        previous = self._tasks.pop(user_id, None)
        if previous is not None and not previous.done():
            previous.cancel()
            log_event(logger, "worker.replaced", component="supervisor", user_id=user_id)

        task = asyncio.create_task(worker, name=f"presence-sync:{user_id}")
        self._tasks[user_id] = task
        task.add_done_callback(lambda finished: self._on_task_done(user_id, finished))
        log_event(
            logger,
            "worker.start",
            component="supervisor",
            user_id=user_id,
            running=len(self._tasks),
        )
        return task

    def cancel(self, user_id: str) -> bool:
        """Request cancellation of the task for ``user_id``; no-op when none runs."""

        task = self._tasks.pop(user_id, None)
        if task is None:
            return False
        task.cancel()
        log_event(logger, "worker.cancel", component="supervisor", user_id=user_id)
        return True

    def is_running(self, user_id: str) -> bool:
        task = self._tasks.get(user_id)
        return task is not None and not task.done()

    def running_ids(self) -> list[str]:
        return sorted(user_id for user_id, task in self._tasks.items() if not task.done())

    def __len__(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel every task and wait for all of them to finish."""

        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log_event(logger, "worker.shutdown", component="supervisor", stopped=len(tasks))

    def _on_task_done(self, user_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(user_id) is task:
            del self._tasks[user_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log_event(
                logger,
                "worker.crashed",
                level="error",
                component="supervisor",
                user_id=user_id,
                error=repr(error),
            )
        else:
            log_event(logger, "worker.exit", component="supervisor", user_id=user_id)


__all__ = ["TaskSupervisor"]
