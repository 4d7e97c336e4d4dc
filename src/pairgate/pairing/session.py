"""Pairing session state and lifecycle transitions."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pairgate.pairing.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle state of a pairing session."""

    CONNECTING = "connecting"  # Opening the conduit connection
    CODE_REQUESTED = "code_requested"  # Pairing code issued, waiting for link
    LINK_OPEN = "link_open"  # Link confirmed, settling
    AWAITING_CREDENTIAL = "awaiting_credential"  # Polling for the credential file
    PACKAGING = "packaging"  # Compressing and encoding credentials
    TRANSMITTING = "transmitting"  # Sending the payload to the linked account
    CLOSING = "closing"  # Closing the conduit
    RECONNECTING = "reconnecting"  # Connection dropped, waiting to reconnect
    FAILED = "failed"  # Gave up; cleanup pending
    CLEANED_UP = "cleaned_up"  # Session directory removed


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.CONNECTING: frozenset(
        {SessionState.CODE_REQUESTED, SessionState.LINK_OPEN, SessionState.RECONNECTING}
    ),
    SessionState.CODE_REQUESTED: frozenset({SessionState.LINK_OPEN, SessionState.RECONNECTING}),
    # The connection may drop at any point until delivery is done
    SessionState.LINK_OPEN: frozenset(
        {SessionState.AWAITING_CREDENTIAL, SessionState.RECONNECTING}
    ),
    SessionState.AWAITING_CREDENTIAL: frozenset(
        {SessionState.PACKAGING, SessionState.RECONNECTING}
    ),
    SessionState.PACKAGING: frozenset({SessionState.TRANSMITTING, SessionState.RECONNECTING}),
    SessionState.TRANSMITTING: frozenset({SessionState.CLOSING, SessionState.RECONNECTING}),
    SessionState.CLOSING: frozenset({SessionState.CLEANED_UP}),
    SessionState.RECONNECTING: frozenset({SessionState.CONNECTING}),
    SessionState.FAILED: frozenset({SessionState.CLEANED_UP}),
    SessionState.CLEANED_UP: frozenset(),
}

TERMINAL_STATES = frozenset({SessionState.FAILED, SessionState.CLEANED_UP})


def can_transition(current: SessionState, target: SessionState) -> bool:
    """Check whether ``current -> target`` is allowed.

    FAILED is reachable from every non-terminal state.
    """
    if target is SessionState.FAILED:
        return current not in TERMINAL_STATES
    return target in _TRANSITIONS[current]


@dataclass
class PairingSession:
    """One linking attempt, owned by a single orchestrator run."""

    session_id: str
    phone_number: str
    storage_dir: Path
    state: SessionState = SessionState.CONNECTING
    created_at: float = field(default_factory=time.time)
    reconnect_attempts: int = 0
    cleaned: bool = False
    failure_reason: str | None = None
    history: list[SessionState] = field(default_factory=lambda: [SessionState.CONNECTING])

    def transition(self, target: SessionState) -> None:
        """Move to ``target``.

        Raises:
            InvalidTransitionError: If the transition is not allowed
        """
        if not can_transition(self.state, target):
            raise InvalidTransitionError(self.state.value, target.value)
        logger.debug(f"Session state {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    def fail(self, reason: str) -> None:
        """Mark the session failed unless it already reached a terminal state."""
        if self.state in TERMINAL_STATES:
            return
        self.failure_reason = reason
        self.transition(SessionState.FAILED)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def age_seconds(self) -> float:
        return time.time() - self.created_at
