"""Registry of detached pairing session tasks.

A pairing session keeps running after its HTTP response is sent. The
registry holds a strong reference to each task so it is not garbage
collected mid-flight, reports how many are active, and cancels the rest on
shutdown (cancellation still runs each session's cleanup).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from pairgate.utils.logging import short_session_label

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Tracks running pairing sessions by session identifier."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    def start(self, session_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run ``coro`` as a detached task registered under ``session_id``.

        Raises:
            ValueError: If a session with this identifier is already running
        """
        if session_id in self._tasks:
            coro.close()
            raise ValueError(f"Session already running: {short_session_label(session_id)}")

        task = asyncio.create_task(coro, name=f"pairing:{short_session_label(session_id)}")
        self._tasks[session_id] = task
        task.add_done_callback(lambda t: self._handle_task_done(t, session_id))
        logger.debug(f"Session task started ({self.active_count} active)")
        return task

    def _handle_task_done(self, task: asyncio.Task[Any], session_id: str) -> None:
        """Log task failures and drop the task from tracking."""
        self._tasks.pop(session_id, None)
        label = short_session_label(session_id)

        if task.cancelled():
            logger.info(f"Session task {label} was cancelled")
            return

        exc = task.exception()
        if exc is not None:
            logger.error(f"Session task {label} failed with exception: {exc}", exc_info=exc)

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def session_ids(self) -> list[str]:
        return list(self._tasks)

    def get(self, session_id: str) -> asyncio.Task[Any] | None:
        return self._tasks.get(session_id)

    async def shutdown(self, timeout: float = 10.0) -> int:
        """Cancel running sessions and wait for their cleanup.

        Args:
            timeout: Seconds to wait for cancelled tasks to finish

        Returns:
            Number of sessions that were cancelled
        """
        tasks = list(self._tasks.values())
        if not tasks:
            return 0

        logger.info(f"Cancelling {len(tasks)} active pairing session(s)")
        for task in tasks:
            task.cancel()

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} session(s) did not finish cleanup within {timeout}s")
        return len(tasks)
