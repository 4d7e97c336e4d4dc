"""Dependency injection helpers for FastAPI routes.

Services are created by the app factory and stored in ``app.state``, so
every app instance (including test apps) has its own orchestrator and
session registry.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from pairgate.config import Settings
from pairgate.pairing.orchestrator import PairingOrchestrator
from pairgate.pairing.registry import SessionRegistry


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings


def get_orchestrator(request: Request) -> PairingOrchestrator:
    """Pairing orchestrator shared by all requests of this app."""
    return request.app.state.orchestrator


def get_session_registry(request: Request) -> SessionRegistry:
    """Registry of detached pairing session tasks.

    Example:
        ```python
        @router.get("/sessions")
        async def sessions(registry: Registry) -> dict[str, int]:
            return {"active": registry.active_count}
        ```
    """
    return request.app.state.registry


AppSettings = Annotated[Settings, Depends(get_app_settings)]
Orchestrator = Annotated[PairingOrchestrator, Depends(get_orchestrator)]
Registry = Annotated[SessionRegistry, Depends(get_session_registry)]
