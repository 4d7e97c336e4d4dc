"""One-shot response handle shared by the HTTP route and the orchestrator.

The route awaits the handle; the orchestrator completes it with either a
pairing code or an error, at most once. Completion is checked and set in a
single step on the event loop, so a second completion is detected reliably.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from pydantic import BaseModel, Field

from pairgate.pairing.errors import ResponseAlreadySentError
from pairgate.pairing.identifiers import format_chronicle_timestamp

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Error codes returned to the HTTP caller."""

    CHAMBER_TEMPORARILY_SEALED = "CHAMBER_TEMPORARILY_SEALED"
    ESSENCE_DISPERSION = "ESSENCE_DISPERSION"


class PairingCodeResponse(BaseModel):
    """Successful pairing response."""

    code: str
    timestamp: str = Field(default_factory=format_chronicle_timestamp)
    message: str = "Use this code swiftly: enter it on your device to link."


class PairingErrorResponse(BaseModel):
    """Failed pairing response."""

    code: ErrorCode
    message: str
    resolution: str | None = None


PairingResponse = PairingCodeResponse | PairingErrorResponse

SEALED_RESPONSE = PairingErrorResponse(
    code=ErrorCode.CHAMBER_TEMPORARILY_SEALED,
    message="The pairing chamber is temporarily sealed.",
    resolution="Wait a moment and request a new pairing code.",
)

DISPERSION_RESPONSE = PairingErrorResponse(
    code=ErrorCode.ESSENCE_DISPERSION,
    message="The pairing attempt dispersed before a code was issued.",
    resolution="Check the number and try again.",
)


class OneShotResponse:
    """Response that can be completed exactly once.

    Example:
        response = OneShotResponse()
        response.complete(PairingCodeResponse(code="ABCD-1234"))
        result = await response.wait(timeout=90)
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[PairingResponse] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def sent(self) -> bool:
        return self._future.done()

    def complete(self, response: PairingResponse) -> None:
        """Deliver the response.

        Raises:
            ResponseAlreadySentError: If a response was already delivered
        """
        if self._future.done():
            raise ResponseAlreadySentError("Response already sent for this request")
        self._future.set_result(response)

    def complete_if_pending(self, response: PairingResponse) -> bool:
        """Deliver the response unless one was already delivered.

        Returns:
            True if this call delivered the response
        """
        if self._future.done():
            logger.debug(f"Response already sent, dropping {type(response).__name__}")
            return False
        self._future.set_result(response)
        return True

    async def wait(self, timeout: float | None = None) -> PairingResponse:
        """Wait for the response.

        On timeout the handle is completed with the dispersion error, so a
        late completion from the orchestrator is dropped.
        """
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except TimeoutError:
            self.complete_if_pending(DISPERSION_RESPONSE)
            return self._future.result()
