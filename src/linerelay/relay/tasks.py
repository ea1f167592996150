"""Detached (fire-and-forget) task runner.

Webhook handlers hand work to the runner and return immediately. The runner
keeps a strong reference to every task until it finishes, logs anything that
escapes a task, and drains in-flight work on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

from linerelay.observability.logging import get_logger
from linerelay.observability.redaction import safe_log_context

logger = get_logger(__name__)


class TaskRunner:
    """Owns detached asyncio tasks for the lifetime of the app."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._spawned = 0

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    @property
    def spawned(self) -> int:
        """Total tasks spawned since start (useful for testing)."""
        return self._spawned

    def spawn(self, task_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Schedule coro as a detached task on the running loop.

        The task starts at the loop's next iteration, so the caller finishes
        its current step (e.g. sending the HTTP response) first.

        Args:
            task_id: Name used for the task and its logs.
            coro: Coroutine to run. It owns its own error handling.

        Returns:
            The created task.
        """
        task = asyncio.get_running_loop().create_task(coro, name=task_id)
        self._tasks.add(task)
        self._spawned += 1
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(
                "detached task cancelled",
                extra={"extra_fields": safe_log_context(task_id=task.get_name())},
            )
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "detached task crashed",
                exc_info=exc,
                extra={
                    "extra_fields": safe_log_context(
                        task_id=task.get_name(),
                        error_type=type(exc).__name__,
                    )
                },
            )

    async def join(self) -> None:
        """Wait until no tasks are pending, including ones spawned meanwhile."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    async def shutdown(self, grace_seconds: float) -> int:
        """Wait up to grace_seconds for running tasks, then cancel the rest.

        Returns:
            Number of tasks cancelled.
        """
        if not self._tasks:
            return 0

        _, still_running = await asyncio.wait(
            set(self._tasks), timeout=max(grace_seconds, 0)
        )
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                "cancelled in-flight tasks on shutdown",
                extra={"extra_fields": safe_log_context(cancelled=len(still_running))},
            )
        return len(still_running)
