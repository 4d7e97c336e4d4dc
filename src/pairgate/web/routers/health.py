"""Health check and service information endpoints."""

from __future__ import annotations

import time
from datetime import UTC, datetime
from typing import Literal

from fastapi import APIRouter, Request
from pydantic import BaseModel

from pairgate import __version__
from pairgate.web.dependencies import AppSettings, Registry

router = APIRouter(tags=["health"])

# Track application start time
_start_time = time.time()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["ok", "degraded"]
    version: str
    uptime_seconds: float
    active_sessions: int
    conduit_configured: bool
    timestamp: str
    message: str


class ChronicleResponse(BaseModel):
    """Service information response model."""

    project: str
    purpose: str
    status: str
    version: str
    signature: str
    timestamp: str
    gates: dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, registry: Registry) -> HealthResponse:
    """Liveness probe.

    Reports ``degraded`` when no conduit factory is configured, since every
    pairing request would fail.
    """
    conduit_configured = request.app.state.orchestrator.factory is not None
    return HealthResponse(
        status="ok" if conduit_configured else "degraded",
        version=__version__,
        uptime_seconds=round(time.time() - _start_time, 2),
        active_sessions=registry.active_count,
        conduit_configured=conduit_configured,
        timestamp=datetime.now(UTC).isoformat(),
        message="Pairing gateway is listening.",
    )


@router.get("/chronicle", response_model=ChronicleResponse)
async def chronicle(settings: AppSettings) -> ChronicleResponse:
    """Describe the service and its routes."""
    return ChronicleResponse(
        project=settings.project_name,
        purpose="Link devices to a messaging account with pairing codes",
        status="active",
        version=__version__,
        signature=settings.signature,
        timestamp=datetime.now(UTC).isoformat(),
        gates={
            "pairing": "/pair",
            "code_chamber": "/code",
            "chronicle": "/chronicle",
            "health": "/health",
        },
    )
