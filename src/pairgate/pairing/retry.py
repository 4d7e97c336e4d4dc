"""Retry and delay policies for the pairing lifecycle.

Every wait in a pairing session is described by a named :class:`RetryPolicy`
so tests can compress timings without patching module constants.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

Sleep = Callable[[float], Awaitable[None]]

# Default timings (seconds)
DEFAULT_PRE_REQUEST_DELAY = 1.5
DEFAULT_LINK_SETTLE_DELAY = 50.0
DEFAULT_CREDENTIAL_POLL_INTERVAL = 8.0
DEFAULT_CREDENTIAL_POLL_ATTEMPTS = 15
DEFAULT_CREDENTIAL_READ_ERROR_DELAY = 2.0
DEFAULT_TRANSMIT_SETTLE_DELAY = 5.0
DEFAULT_TRANSMIT_ATTEMPTS = 5
DEFAULT_TRANSMIT_INTERVAL = 3.0
DEFAULT_CLOSE_DELAY = 3.0
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_MAX_RECONNECTS = 5


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with a delay between them.

    With ``backoff == 1.0`` (the default) every gap equals ``interval``;
    larger values grow the gap exponentially up to ``max_delay``.

    Example:
        policy = RetryPolicy(max_attempts=5, interval=3.0)
        for attempt in range(policy.max_attempts):
            if try_once():
                break
            if policy.has_next(attempt):
                await sleep(policy.delay_for(attempt))
    """

    max_attempts: int = 1
    interval: float = 0.0
    backoff: float = 1.0
    max_delay: float | None = None
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0 (got {self.max_attempts})")
        if self.interval < 0:
            raise ValueError(f"interval must be >= 0 (got {self.interval})")
        if self.backoff < 1.0:
            raise ValueError(f"backoff must be >= 1.0 (got {self.backoff})")
        if not 0.0 <= self.jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0 (got {self.jitter})")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given 0-indexed attempt."""
        delay = self.interval * (self.backoff**attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)

        if self.jitter > 0:
            jitter_amount = delay * self.jitter
            delay += random.uniform(-jitter_amount, jitter_amount)

        return float(max(0.0, delay))

    def has_next(self, attempt: int) -> bool:
        """Whether another attempt follows the given 0-indexed attempt."""
        return attempt + 1 < self.max_attempts

    @property
    def total_wait(self) -> float:
        """Sum of the gaps between attempts, ignoring jitter."""
        total = 0.0
        for attempt in range(max(0, self.max_attempts - 1)):
            delay = self.interval * (self.backoff**attempt)
            if self.max_delay is not None:
                delay = min(delay, self.max_delay)
            total += delay
        return total


@dataclass(frozen=True)
class TimingPolicies:
    """All waits of one pairing session.

    Single delays are plain seconds; repeated operations are policies.
    ``reconnect.max_attempts`` is the reconnect cap and
    ``reconnect.interval`` the wait before each reconnect.
    """

    pre_request_delay: float = DEFAULT_PRE_REQUEST_DELAY
    link_settle_delay: float = DEFAULT_LINK_SETTLE_DELAY
    credential_poll: RetryPolicy = RetryPolicy(
        DEFAULT_CREDENTIAL_POLL_ATTEMPTS, DEFAULT_CREDENTIAL_POLL_INTERVAL
    )
    credential_read_error_delay: float = DEFAULT_CREDENTIAL_READ_ERROR_DELAY
    transmit_settle_delay: float = DEFAULT_TRANSMIT_SETTLE_DELAY
    transmit: RetryPolicy = RetryPolicy(DEFAULT_TRANSMIT_ATTEMPTS, DEFAULT_TRANSMIT_INTERVAL)
    close_delay: float = DEFAULT_CLOSE_DELAY
    reconnect: RetryPolicy = RetryPolicy(DEFAULT_MAX_RECONNECTS, DEFAULT_RECONNECT_DELAY)

    @property
    def link_open_timeout(self) -> float:
        """How long a session waits for the link to open before giving up.

        The wait reuses the credential polling policy: one check per poll
        interval, as many checks as poll attempts.
        """
        poll = self.credential_poll
        return poll.max_attempts * poll.interval


async def default_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)
