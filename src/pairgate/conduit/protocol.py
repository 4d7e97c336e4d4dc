"""Contract between the pairing orchestrator and a messaging conduit.

The conduit implements the messaging protocol itself (handshake, encryption,
framing). This service only needs the small surface described here, so any
implementation that satisfies these protocols can be plugged in through
``PAIRGATE_CONDUIT_FACTORY``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pairgate.conduit.events import ConduitEvents
    from pairgate.storage.auth_state import MultiFileAuthState

LOGGED_OUT_STATUS = 401

ConnectionState = Literal["connecting", "open", "close"]


@dataclass(frozen=True)
class DisconnectInfo:
    """Why the conduit connection closed."""

    status_code: int | None = None
    reason: str | None = None

    @property
    def logged_out(self) -> bool:
        return self.status_code == LOGGED_OUT_STATUS


@dataclass(frozen=True)
class ConnectionUpdate:
    """Payload of the ``connection.update`` event."""

    connection: ConnectionState | None = None
    last_disconnect: DisconnectInfo | None = None


@dataclass
class ConduitConfig:
    """Options passed to :meth:`ConduitFactory.connect`."""

    version: tuple[int, ...]
    auth_state: MultiFileAuthState
    print_qr_in_terminal: bool = False
    sync_full_history: bool = False
    mark_online_on_connect: bool = True
    connect_timeout_ms: int = 60_000
    keepalive_interval_ms: int = 30_000
    client_identity: str = "PairGate"
    browser: tuple[str, str, str] = ("Ubuntu", "Chrome", "20.0.04")
    max_listeners: int = 5000


@dataclass(frozen=True)
class InteractiveButton:
    """Button attached to an interactive message.

    ``kind`` is ``"cta_copy"`` (copies ``value``) or ``"cta_url"`` (opens ``value``).
    """

    kind: Literal["cta_copy", "cta_url"]
    display_text: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        if self.kind == "cta_copy":
            params = {"display_text": self.display_text, "copy_code": self.value}
        else:
            params = {"display_text": self.display_text, "url": self.value}
        return {"name": self.kind, "buttonParamsJson": params}


@dataclass(frozen=True)
class InteractiveMessage:
    """Message with body text, footer and buttons."""

    text: str
    footer: str = ""
    buttons: tuple[InteractiveButton, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "footer": self.footer,
            "interactiveButtons": [b.to_dict() for b in self.buttons],
        }


@runtime_checkable
class Conduit(Protocol):
    """An open connection to the messaging network."""

    auth_state: MultiFileAuthState
    events: ConduitEvents

    @property
    def user_id(self) -> str | None:
        """Identifier of the linked account, known once the link is open."""
        ...

    async def request_pairing_code(self, phone_number: str, code: str) -> str: ...

    async def send_interactive_message(
        self, recipient: str, message: InteractiveMessage
    ) -> Any: ...

    async def close(self) -> None: ...


@runtime_checkable
class ConduitFactory(Protocol):
    """Creates conduit connections."""

    async def fetch_latest_version(self) -> tuple[int, ...]: ...

    async def connect(self, config: ConduitConfig) -> Conduit: ...
