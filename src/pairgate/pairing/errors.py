"""Pairing session exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pairgate.conduit.protocol import DisconnectInfo


class PairingError(Exception):
    """Base exception for pairing session errors."""


class TransportError(PairingError):
    """Raised when the conduit cannot connect or communicate."""


class CredentialTimeoutError(PairingError):
    """Raised when credential material never became available.

    Covers both a link that never opened and a credential file that never
    grew past the acceptance size within the polling policy.
    """


class TransmissionError(PairingError):
    """Raised when every attempt to deliver the payload failed."""


class LogoutDisconnect(PairingError):
    """Raised when the conduit closed because the account logged out (status 401)."""


class ReconnectLimitError(PairingError):
    """Raised when the connection dropped more often than the reconnect cap allows."""


class ConnectionClosed(PairingError):
    """Raised inside a run when the conduit reports the connection closed.

    Handled by the reconnect loop, which turns a logout into
    :class:`LogoutDisconnect` and anything else into a reconnect.
    """

    def __init__(self, disconnect: DisconnectInfo | None):
        self.disconnect = disconnect
        status = disconnect.status_code if disconnect else None
        super().__init__(f"Connection closed (status {status})")


class InvalidTransitionError(PairingError):
    """Raised on an illegal session state transition."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid session transition: {current} -> {target}")


class ResponseAlreadySentError(PairingError):
    """Raised when a one-shot response is completed a second time."""
