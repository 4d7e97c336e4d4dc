"""Pairing session orchestrator.

Runs one linking attempt from connection to cleanup:

1. Connect the conduit with the session's persisted auth state
2. Request a pairing code (unregistered accounts only) and answer the caller
3. Wait for the link to open, then let it settle
4. Poll for the credential file the conduit writes
5. Compress, encode and send it to the linked account
6. Close the conduit and remove the session directory

A connection close before delivery completes sends the run back to step 1
(up to the reconnect cap) unless the account logged out, which fails it.

The HTTP caller gets at most one answer through the :class:`OneShotResponse`
and the session directory is removed exactly once, on every exit path
including cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pairgate.conduit.events import CONNECTION_UPDATE, CREDS_UPDATE
from pairgate.conduit.protocol import (
    Conduit,
    ConduitConfig,
    ConduitFactory,
    ConnectionUpdate,
    DisconnectInfo,
    InteractiveMessage,
)
from pairgate.pairing.errors import (
    ConnectionClosed,
    CredentialTimeoutError,
    LogoutDisconnect,
    ReconnectLimitError,
    TransmissionError,
    TransportError,
)
from pairgate.pairing.identifiers import (
    DEFAULT_SESSION_PREFIX,
    generate_communion_code,
    normalize_phone_number,
)
from pairgate.pairing.payload import build_interactive_message, build_payload
from pairgate.pairing.responder import (
    DISPERSION_RESPONSE,
    SEALED_RESPONSE,
    OneShotResponse,
    PairingCodeResponse,
)
from pairgate.pairing.retry import Sleep, TimingPolicies, default_sleep
from pairgate.pairing.session import PairingSession, SessionState
from pairgate.storage.auth_state import MultiFileAuthState
from pairgate.storage.credentials import DEFAULT_MIN_CREDENTIAL_BYTES, CredentialStore
from pairgate.storage.errors import StorageError
from pairgate.utils.logging import (
    TimingContext,
    mask_phone_number,
    reset_session_id,
    set_session_id,
)

if TYPE_CHECKING:
    from pairgate.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConduitOptions:
    """Connection options passed through to every conduit."""

    client_identity: str = "PairGate/1.0"
    browser: tuple[str, str, str] = ("macOS", "Safari", "17.0")
    connect_timeout_ms: int = 60_000
    keepalive_interval_ms: int = 30_000
    max_listeners: int = 5000


@dataclass(frozen=True)
class DeliveryOptions:
    """How captured credentials are packaged and presented."""

    payload_prefix: str = DEFAULT_SESSION_PREFIX
    footer_text: str = ""
    link_buttons: dict[str, str] = field(default_factory=dict)
    min_credential_bytes: int = DEFAULT_MIN_CREDENTIAL_BYTES


@dataclass
class _SessionRun:
    """Mutable state of one orchestrator run."""

    session: PairingSession
    response: OneShotResponse
    conduit: Conduit | None = None
    auth_state: MultiFileAuthState | None = None
    updates: asyncio.Queue[ConnectionUpdate] = field(default_factory=asyncio.Queue)


class PairingOrchestrator:
    """Drives pairing sessions against a conduit factory.

    One orchestrator serves every session; all per-session state lives in
    the run, so concurrent sessions share nothing mutable.

    Example:
        orchestrator = PairingOrchestrator(factory, CredentialStore(sessions_dir))
        response = OneShotResponse()
        task = asyncio.create_task(orchestrator.run("+1 555 0100", session_id, response))
        answer = await response.wait(timeout=90)
    """

    def __init__(
        self,
        factory: ConduitFactory | None,
        store: CredentialStore,
        timings: TimingPolicies | None = None,
        conduit_options: ConduitOptions | None = None,
        delivery: DeliveryOptions | None = None,
        sleep: Sleep = default_sleep,
    ):
        self.factory = factory
        self.store = store
        self.timings = timings or TimingPolicies()
        self.conduit_options = conduit_options or ConduitOptions()
        self.delivery = delivery or DeliveryOptions()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        factory: ConduitFactory | None,
        sleep: Sleep = default_sleep,
    ) -> PairingOrchestrator:
        return cls(
            factory=factory,
            store=CredentialStore(settings.sessions_dir),
            timings=settings.timing_policies(),
            conduit_options=ConduitOptions(
                client_identity=settings.client_identity,
                browser=settings.browser,
                connect_timeout_ms=settings.connect_timeout_ms,
                keepalive_interval_ms=settings.keepalive_interval_ms,
                max_listeners=settings.max_listeners,
            ),
            delivery=DeliveryOptions(
                payload_prefix=settings.payload_prefix,
                footer_text=settings.footer_text,
                link_buttons=dict(settings.link_buttons),
                min_credential_bytes=settings.min_credential_bytes,
            ),
            sleep=sleep,
        )

    async def run(
        self, phone_number: str, session_id: str, response: OneShotResponse
    ) -> PairingSession:
        """Run one pairing session to completion.

        Never raises except for cancellation; failures end in the FAILED
        state and every path ends in CLEANED_UP.

        Args:
            phone_number: Number to link (any formatting; non-digits are stripped)
            session_id: Session identifier, also the session directory name
            response: Handle the HTTP caller is waiting on

        Returns:
            The finished session
        """
        session = PairingSession(
            session_id=session_id,
            phone_number=phone_number,
            storage_dir=self.store.session_dir(session_id),
        )
        run = _SessionRun(session=session, response=response)
        token = set_session_id(session_id)
        logger.info(f"Pairing session started for {mask_phone_number(phone_number)}")

        try:
            with TimingContext("Pairing session", logger):
                try:
                    await self._run(run)
                except TransportError as e:
                    logger.error(f"Conduit unavailable: {e}")
                    session.fail(str(e))
                    response.complete_if_pending(SEALED_RESPONSE)
                except (
                    CredentialTimeoutError,
                    TransmissionError,
                    LogoutDisconnect,
                    ReconnectLimitError,
                ) as e:
                    logger.warning(f"Pairing session failed: {e}")
                    session.fail(str(e))
                except asyncio.CancelledError:
                    logger.info("Pairing session cancelled")
                    session.fail("cancelled")
                    raise
                except Exception as e:
                    logger.exception("Unexpected error in pairing session")
                    session.fail(f"unexpected error: {type(e).__name__}")
        finally:
            if response.complete_if_pending(DISPERSION_RESPONSE):
                logger.info("Session ended before a pairing code was issued")
            await self._close_conduit(run)
            await self.cleanup(session)
            reset_session_id(token)

        return session

    async def cleanup(self, session: PairingSession) -> None:
        """Remove the session directory once.

        Later calls for the same session do nothing and log nothing.
        """
        if session.cleaned:
            return
        session.cleaned = True

        try:
            await self.store.aremove_tree(session.storage_dir)
        except StorageError as e:
            logger.error(f"Session cleanup failed: {e}")

        if session.state not in (SessionState.CLOSING, SessionState.FAILED):
            session.fail(f"cleanup in state {session.state.value}")
        session.transition(SessionState.CLEANED_UP)
        logger.info("Session artifacts removed")

    async def _run(self, run: _SessionRun) -> None:
        session = run.session
        if self.factory is None:
            raise TransportError("No conduit factory configured")

        while True:
            try:
                await self._connect(run)
                if run.auth_state is not None and not run.auth_state.registered:
                    await self._request_pairing_code(run)
                await self._wait_for_link(run)
                await self._deliver(run)
                return
            except ConnectionClosed as e:
                await self._close_conduit(run)
                await self._prepare_reconnect(session, e.disconnect)

    async def _deliver(self, run: _SessionRun) -> None:
        session = run.session
        session.transition(SessionState.LINK_OPEN)
        logger.info("Link established, waiting for credentials to settle")
        await self._pause(run, self.timings.link_settle_delay)

        session.transition(SessionState.AWAITING_CREDENTIAL)
        credentials = await self._poll_credentials(run)

        session.transition(SessionState.PACKAGING)
        payload = build_payload(credentials, self.delivery.payload_prefix)
        message = build_interactive_message(
            payload,
            footer=self.delivery.footer_text,
            link_buttons=self.delivery.link_buttons,
        )

        session.transition(SessionState.TRANSMITTING)
        await self._pause(run, self.timings.transmit_settle_delay)
        await self._transmit(run, message)

        # Delivered; a close from here on changes nothing
        session.transition(SessionState.CLOSING)
        await self._sleep(self.timings.close_delay)
        await self._close_conduit(run)

    async def _connect(self, run: _SessionRun) -> None:
        assert self.factory is not None
        version = tuple(await self.factory.fetch_latest_version())
        logger.info(f"Conduit protocol v{'.'.join(str(v) for v in version)}")

        run.auth_state = await MultiFileAuthState.aload(run.session.storage_dir)
        options = self.conduit_options
        config = ConduitConfig(
            version=version,
            auth_state=run.auth_state,
            print_qr_in_terminal=False,
            sync_full_history=False,
            mark_online_on_connect=True,
            connect_timeout_ms=options.connect_timeout_ms,
            keepalive_interval_ms=options.keepalive_interval_ms,
            client_identity=options.client_identity,
            browser=options.browser,
            max_listeners=options.max_listeners,
        )

        try:
            conduit = await self.factory.connect(config)
        except Exception as e:
            raise TransportError(f"Conduit connection failed: {e}") from e

        # Subscribe before the next await so no early event is missed
        run.conduit = conduit
        run.updates = asyncio.Queue()
        conduit.events.on(CREDS_UPDATE, run.auth_state.save_creds)
        conduit.events.on(CONNECTION_UPDATE, run.updates.put_nowait)

    async def _request_pairing_code(self, run: _SessionRun) -> None:
        assert run.conduit is not None
        run.session.transition(SessionState.CODE_REQUESTED)
        await self._sleep(self.timings.pre_request_delay)

        number = normalize_phone_number(run.session.phone_number)
        communion_code = generate_communion_code()
        try:
            code = await run.conduit.request_pairing_code(number, communion_code)
        except Exception as e:
            raise TransportError(f"Pairing code request failed: {e}") from e

        if run.response.complete_if_pending(PairingCodeResponse(code=code)):
            logger.info("Pairing code issued")
        else:
            logger.info("Pairing code reissued after reconnect; caller already answered")

    async def _wait_for_link(self, run: _SessionRun) -> None:
        """Wait for the connection to open.

        Checks once per credential poll interval, as many times as the
        credential poll allows.

        Raises:
            ConnectionClosed: If the connection closed first
            CredentialTimeoutError: If neither happened in time
        """
        poll = self.timings.credential_poll
        for check in range(poll.max_attempts + 1):
            while not run.updates.empty():
                update = run.updates.get_nowait()
                if update.connection == "open":
                    return
                if update.connection == "close":
                    raise ConnectionClosed(update.last_disconnect)
            if check < poll.max_attempts:
                await self._sleep(poll.interval)

        raise CredentialTimeoutError(
            f"Link did not open after {poll.max_attempts} checks "
            f"{poll.interval:g}s apart"
        )

    def _raise_if_closed(self, run: _SessionRun) -> None:
        """Consume pending connection updates; raise if one is a close."""
        while not run.updates.empty():
            update = run.updates.get_nowait()
            if update.connection == "close":
                raise ConnectionClosed(update.last_disconnect)

    async def _pause(self, run: _SessionRun, seconds: float) -> None:
        """Sleep on an open link, waking early if the connection closes.

        Raises:
            ConnectionClosed: If a close was pending or arrived while sleeping
        """
        self._raise_if_closed(run)

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        watcher = asyncio.ensure_future(_next_close(run.updates))
        try:
            await asyncio.wait({sleeper, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            watcher.cancel()
            await asyncio.gather(sleeper, watcher, return_exceptions=True)

        if watcher.done() and not watcher.cancelled():
            raise ConnectionClosed(watcher.result().last_disconnect)
        self._raise_if_closed(run)

    async def _prepare_reconnect(
        self, session: PairingSession, disconnect: DisconnectInfo | None
    ) -> None:
        if disconnect is not None and disconnect.logged_out:
            raise LogoutDisconnect("Connection closed: account logged out")

        policy = self.timings.reconnect
        if session.reconnect_attempts >= policy.max_attempts:
            raise ReconnectLimitError(
                f"Connection dropped after {session.reconnect_attempts} reconnects"
            )

        status = disconnect.status_code if disconnect else None
        session.reconnect_attempts += 1
        session.transition(SessionState.RECONNECTING)
        logger.info(
            f"Connection closed (status {status}), reconnecting "
            f"({session.reconnect_attempts}/{policy.max_attempts})"
        )
        await self._sleep(policy.delay_for(session.reconnect_attempts - 1))
        session.transition(SessionState.CONNECTING)

    async def _poll_credentials(self, run: _SessionRun) -> bytes:
        """Read the credential file until it is large enough.

        Every unsuccessful attempt, the last one included, is followed by
        a wait, so the whole poll spans ``max_attempts`` waits.
        """
        session = run.session
        poll = self.timings.credential_poll
        for attempt in range(poll.max_attempts):
            self._raise_if_closed(run)
            try:
                credentials = await self.store.aread_credentials(
                    session.session_id, self.delivery.min_credential_bytes
                )
            except StorageError as e:
                logger.warning(
                    f"Credential read failed (attempt {attempt + 1}/{poll.max_attempts}): {e}"
                )
                await self._pause(run, self.timings.credential_read_error_delay)
                continue

            if credentials is not None:
                logger.info(f"Credentials captured ({len(credentials)} bytes)")
                return credentials

            await self._pause(run, poll.delay_for(attempt))

        raise CredentialTimeoutError(
            f"Credentials not available after {poll.max_attempts} attempts"
        )

    async def _transmit(self, run: _SessionRun, message: InteractiveMessage) -> None:
        assert run.conduit is not None
        recipient = run.conduit.user_id
        if not recipient:
            raise TransmissionError("Linked account id is unknown")

        policy = self.timings.transmit
        for attempt in range(policy.max_attempts):
            self._raise_if_closed(run)
            try:
                await run.conduit.send_interactive_message(recipient, message)
            except Exception as e:
                logger.warning(
                    f"Transmission failed (attempt {attempt + 1}/{policy.max_attempts}): {e}"
                )
                if policy.has_next(attempt):
                    await self._pause(run, policy.delay_for(attempt))
                continue

            logger.info("Credentials delivered to the linked account")
            return

        raise TransmissionError(f"Delivery failed after {policy.max_attempts} attempts")

    async def _close_conduit(self, run: _SessionRun) -> None:
        conduit, run.conduit = run.conduit, None
        if conduit is None:
            return

        conduit.events.off(CONNECTION_UPDATE, run.updates.put_nowait)
        if run.auth_state is not None:
            conduit.events.off(CREDS_UPDATE, run.auth_state.save_creds)

        try:
            await conduit.close()
            logger.info("Conduit closed")
        except Exception as e:
            logger.warning(f"Error closing conduit: {e}")

        # Pending auth state writes must land before the directory is removed
        await conduit.events.drain()


async def _next_close(updates: asyncio.Queue[ConnectionUpdate]) -> ConnectionUpdate:
    while True:
        update = await updates.get()
        if update.connection == "close":
            return update
