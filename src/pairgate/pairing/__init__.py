"""Pairing sessions: identifiers, lifecycle orchestration and delivery."""

from pairgate.pairing.errors import (
    CredentialTimeoutError,
    InvalidTransitionError,
    LogoutDisconnect,
    PairingError,
    ReconnectLimitError,
    ResponseAlreadySentError,
    TransmissionError,
    TransportError,
)
from pairgate.pairing.identifiers import generate_session_id, validate_session_id
from pairgate.pairing.orchestrator import PairingOrchestrator
from pairgate.pairing.registry import SessionRegistry
from pairgate.pairing.responder import OneShotResponse
from pairgate.pairing.session import PairingSession, SessionState

__all__ = [
    "CredentialTimeoutError",
    "InvalidTransitionError",
    "LogoutDisconnect",
    "OneShotResponse",
    "PairingError",
    "PairingOrchestrator",
    "PairingSession",
    "ReconnectLimitError",
    "ResponseAlreadySentError",
    "SessionRegistry",
    "SessionState",
    "TransmissionError",
    "TransportError",
    "generate_session_id",
    "validate_session_id",
]
