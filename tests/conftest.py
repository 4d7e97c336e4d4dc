"""Pytest configuration and shared fixtures for PairGate tests.

Fixtures:
- isolated_tmp_dir: Isolated temporary directory (auto-cleanup)
- sessions_dir: Session directories root inside isolated_tmp_dir
- recording_sleep: Sleep replacement that records requested delays
- blocking_sleep: Recording sleep that blocks on the link settle wait
- disconnecting_sleep: Factory for sleeps that close the connection mid-wait
- conduit_factory: Factory for scripted fake conduit factories
- make_script: Factory for connection scripts
- test_settings: Settings pointing at isolated_tmp_dir
- accepted_creds: Credential dict large enough to be accepted

Waits are never real: orchestrators under test get recording_sleep (or
another RecordingSleep), which only yields to the event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from pairgate.conduit.events import CONNECTION_UPDATE, CREDS_UPDATE, ConduitEvents
from pairgate.conduit.protocol import (
    ConduitConfig,
    ConnectionUpdate,
    DisconnectInfo,
    InteractiveMessage,
)
from pairgate.config import Settings

LINKED_USER_ID = "linked-account@conduit.test"

# Serialized size is well above the 100 byte acceptance threshold
ACCEPTED_CREDS: dict[str, Any] = {
    "registered": True,
    "me": {"id": LINKED_USER_ID, "name": "Linked Device"},
    "noise_key": "N" * 64,
    "signed_identity_key": "S" * 64,
}


@dataclass
class ConnectionScript:
    """What one fake connection does after ``connect`` returns.

    Attributes:
        creds: Auth state written to creds.json (and announced) when the link opens
        creds_dir: Create a directory named creds.json so reads fail
        updates: Connection updates emitted in order
        send_failures: Number of send attempts that raise before one succeeds
        code: Pairing code returned by request_pairing_code
        code_error: Exception raised by request_pairing_code
        user_id: Linked account id reported once connected
    """

    creds: dict[str, Any] | None = None
    creds_dir: bool = False
    updates: list[ConnectionUpdate] = field(default_factory=list)
    send_failures: int = 0
    code: str = "ABCD-1234"
    code_error: Exception | None = None
    user_id: str | None = LINKED_USER_ID


class FakeConduit:
    """In-memory conduit driven by a ConnectionScript."""

    def __init__(self, config: ConduitConfig, script: ConnectionScript):
        self.config = config
        self.auth_state = config.auth_state
        self.events = ConduitEvents(max_listeners=config.max_listeners)
        self.script = script
        self.pairing_requests: list[tuple[str, str]] = []
        self.sent: list[tuple[str, InteractiveMessage]] = []
        self.send_attempts = 0
        self.closed = False

    @property
    def user_id(self) -> str | None:
        return self.script.user_id

    def start(self) -> None:
        """Emit the scripted events on the next loop iteration."""
        asyncio.get_running_loop().call_soon(self._play)

    def _play(self) -> None:
        if self.closed:
            return
        if self.script.creds is not None:
            self.auth_state.creds = dict(self.script.creds)
            self.auth_state.save_creds_sync()
            self.events.emit(CREDS_UPDATE)
        if self.script.creds_dir:
            (self.auth_state.folder / "creds.json").mkdir(parents=True, exist_ok=True)
        for update in self.script.updates:
            self.events.emit(CONNECTION_UPDATE, update)

    async def request_pairing_code(self, phone_number: str, code: str) -> str:
        self.pairing_requests.append((phone_number, code))
        if self.script.code_error is not None:
            raise self.script.code_error
        return self.script.code

    async def send_interactive_message(self, recipient: str, message: InteractiveMessage) -> Any:
        self.send_attempts += 1
        if self.send_attempts <= self.script.send_failures:
            raise ConnectionError("send failed")
        self.sent.append((recipient, message))
        return {"status": "sent"}

    async def close(self) -> None:
        self.closed = True


class FakeConduitFactory:
    """Conduit factory that plays one script per connection.

    When the scripts run out the last one is reused.
    """

    def __init__(
        self,
        *scripts: ConnectionScript,
        version: tuple[int, ...] = (2, 3000, 1015901307),
        connect_error: Exception | None = None,
        version_error: Exception | None = None,
        version_delay: float = 0.0,
    ):
        self.scripts = list(scripts) or [ConnectionScript()]
        self.version = version
        self.connect_error = connect_error
        self.version_error = version_error
        self.version_delay = version_delay
        self.configs: list[ConduitConfig] = []
        self.conduits: list[FakeConduit] = []

    async def fetch_latest_version(self) -> tuple[int, ...]:
        if self.version_delay:
            await asyncio.sleep(self.version_delay)
        if self.version_error is not None:
            raise self.version_error
        return self.version

    async def connect(self, config: ConduitConfig) -> FakeConduit:
        self.configs.append(config)
        if self.connect_error is not None:
            raise self.connect_error

        index = min(len(self.conduits), len(self.scripts) - 1)
        conduit = FakeConduit(config, self.scripts[index])
        self.conduits.append(conduit)
        conduit.start()
        return conduit


class RecordingSleep:
    """Sleep replacement that records delays and only yields to the loop."""

    def __init__(self, block_on: float | None = None):
        self.calls: list[float] = []
        self.block_on = block_on

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.block_on is not None and seconds == self.block_on:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


class DisconnectingSleep(RecordingSleep):
    """Recording sleep that drops the newest connection at its first ``on`` wait.

    Emits a close with ``status_code`` on the latest conduit before
    yielding, the way a conduit reports a dropped socket mid-wait.
    """

    def __init__(self, factory: FakeConduitFactory, on: float, status_code: int | None):
        super().__init__()
        self.factory = factory
        self.on = on
        self.status_code = status_code
        self.fired = False

    async def __call__(self, seconds: float) -> None:
        if not self.fired and seconds == self.on and self.factory.conduits:
            self.fired = True
            self.factory.conduits[-1].events.emit(
                CONNECTION_UPDATE,
                ConnectionUpdate(
                    connection="close",
                    last_disconnect=DisconnectInfo(status_code=self.status_code),
                ),
            )
        await super().__call__(seconds)


@pytest.fixture
def isolated_tmp_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide an isolated temporary directory that is auto-cleaned.

    Yields:
        Path to isolated temporary directory
    """
    test_dir = tmp_path / "test_workspace"
    test_dir.mkdir(parents=True, exist_ok=True)
    yield test_dir


@pytest.fixture
def sessions_dir(isolated_tmp_dir: Path) -> Path:
    path = isolated_tmp_dir / "sessions"
    path.mkdir()
    return path


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_script() -> Callable[..., ConnectionScript]:
    """Factory for connection scripts.

    ``make_script("open", creds=...)`` emits an open update;
    ``make_script(("close", 500))`` emits a close with a status code.
    """

    def _make(*events: str | tuple[str, int | None], **kwargs: Any) -> ConnectionScript:
        updates = []
        for event in events:
            if isinstance(event, tuple):
                connection, status = event
                updates.append(
                    ConnectionUpdate(
                        connection=connection,  # type: ignore[arg-type]
                        last_disconnect=DisconnectInfo(status_code=status),
                    )
                )
            else:
                updates.append(ConnectionUpdate(connection=event))  # type: ignore[arg-type]
        return ConnectionScript(updates=updates, **kwargs)

    return _make


@pytest.fixture
def conduit_factory() -> Callable[..., FakeConduitFactory]:
    """Factory for fake conduit factories."""

    def _make(*scripts: ConnectionScript, **kwargs: Any) -> FakeConduitFactory:
        return FakeConduitFactory(*scripts, **kwargs)

    return _make


@pytest.fixture
def accepted_creds() -> dict[str, Any]:
    return dict(ACCEPTED_CREDS)


@pytest.fixture
def test_settings(isolated_tmp_dir: Path) -> Settings:
    """Settings with an isolated data dir and a short response timeout."""
    return Settings(
        data_dir=isolated_tmp_dir / "data",
        port=8899,
        response_timeout=5.0,
        link_buttons={"Support": "https://example.com/support"},
    )


@pytest.fixture
def blocking_sleep() -> RecordingSleep:
    """Recording sleep that never returns from the 50 s link settle wait."""
    return RecordingSleep(block_on=50.0)


@pytest.fixture
def disconnecting_sleep() -> Callable[..., DisconnectingSleep]:
    """Factory for sleeps that close the connection at a given wait.

    ``disconnecting_sleep(factory, on=8.0, status_code=500)`` drops the
    newest conduit of ``factory`` the first time an 8 s wait starts.
    """

    def _make(
        factory: FakeConduitFactory, on: float, status_code: int | None = None
    ) -> DisconnectingSleep:
        return DisconnectingSleep(factory, on, status_code)

    return _make
