"""Messaging conduit contract and event dispatch."""

from pairgate.conduit.events import CONNECTION_UPDATE, CREDS_UPDATE, ConduitEvents
from pairgate.conduit.loader import ConduitLoadError, load_conduit_factory
from pairgate.conduit.protocol import (
    LOGGED_OUT_STATUS,
    Conduit,
    ConduitConfig,
    ConduitFactory,
    ConnectionUpdate,
    DisconnectInfo,
    InteractiveButton,
    InteractiveMessage,
)

__all__ = [
    "CONNECTION_UPDATE",
    "CREDS_UPDATE",
    "LOGGED_OUT_STATUS",
    "Conduit",
    "ConduitConfig",
    "ConduitEvents",
    "ConduitFactory",
    "ConduitLoadError",
    "ConnectionUpdate",
    "DisconnectInfo",
    "InteractiveButton",
    "InteractiveMessage",
    "load_conduit_factory",
]
