"""Event emitter used by messaging conduits.

Conduits publish two named events:

- ``creds.update``: auth state changed and should be persisted
- ``connection.update``: carries a :class:`~pairgate.conduit.protocol.ConnectionUpdate`

Listeners may be plain callables or coroutine functions. Coroutine results
are scheduled on the running loop and the emitter keeps a reference to each
task until it finishes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

CREDS_UPDATE = "creds.update"
CONNECTION_UPDATE = "connection.update"

DEFAULT_MAX_LISTENERS = 5000

Listener = Callable[..., Any]


class ConduitEvents:
    """Named-event emitter with a per-event listener cap.

    Usage:
        events = ConduitEvents(max_listeners=10)

        def on_connection(update):
            print(update.connection)

        events.on("connection.update", on_connection)
        events.emit("connection.update", update)
        events.off("connection.update", on_connection)

    Exceeding ``max_listeners`` for an event does not reject the listener;
    it logs a warning once for that event name.
    """

    def __init__(self, max_listeners: int = DEFAULT_MAX_LISTENERS):
        if max_listeners < 1:
            raise ValueError(f"max_listeners must be positive (got {max_listeners})")
        self.max_listeners = max_listeners
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._warned: set[str] = set()
        self._pending: set[asyncio.Task[Any]] = set()

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener for an event.

        Registering the same listener twice for one event is a no-op.
        """
        listeners = self._listeners[event]
        if listener in listeners:
            return
        listeners.append(listener)

        if len(listeners) > self.max_listeners and event not in self._warned:
            self._warned.add(event)
            logger.warning(
                f"Event '{event}' has {len(listeners)} listeners "
                f"(limit {self.max_listeners}); possible listener leak"
            )

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of ``event`` with ``args``.

        A failing listener is logged and does not stop the others.

        Returns:
            True if the event had listeners
        """
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                result = listener(*args)
            except Exception:
                logger.exception(f"Listener for '{event}' failed")
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

        return bool(listeners)

    def _schedule(self, event: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    f"Async listener for '{event}' failed: {t.exception()}",
                    exc_info=t.exception(),
                )

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for all scheduled listener coroutines to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
