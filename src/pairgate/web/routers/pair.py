"""Pairing endpoint router.

``GET /pair?number=<phone>`` starts a pairing session and answers with the
pairing code (200) or an error (500). The session keeps running after the
answer to capture, deliver and clean up. ``GET /code`` is the same endpoint
under its older path.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from pairgate.pairing.identifiers import generate_session_id, normalize_phone_number
from pairgate.pairing.responder import OneShotResponse, PairingCodeResponse
from pairgate.utils.logging import mask_phone_number, short_session_label
from pairgate.web.dependencies import AppSettings, Orchestrator, Registry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["pairing"])


@router.get("/pair")
@router.get("/code", include_in_schema=False)
async def request_pairing_code(
    number: Annotated[
        str,
        Query(min_length=1, max_length=32, description="Phone number to link (digits)"),
    ],
    settings: AppSettings,
    orchestrator: Orchestrator,
    registry: Registry,
) -> JSONResponse:
    """Start a pairing session and return its pairing code.

    Returns:
        ``{code, timestamp, message}`` with status 200, or
        ``{code, message, resolution}`` with status 500
    """
    if not normalize_phone_number(number):
        return JSONResponse(
            status_code=422,
            content={"detail": "Invalid input data", "errors": [{"msg": "number has no digits"}]},
        )

    session_id = generate_session_id(settings.session_prefix)
    response = OneShotResponse()
    logger.info(
        f"Pairing requested for {mask_phone_number(number)} "
        f"(session {short_session_label(session_id)})"
    )

    registry.start(session_id, orchestrator.run(number, session_id, response))
    result = await response.wait(timeout=settings.response_timeout)

    status_code = 200 if isinstance(result, PairingCodeResponse) else 500
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
