"""FastAPI application factory."""

from __future__ import annotations

import logging
import platform
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from pairgate import __version__
from pairgate.conduit.loader import load_conduit_factory
from pairgate.conduit.protocol import ConduitFactory
from pairgate.config import Settings, get_settings
from pairgate.pairing.orchestrator import PairingOrchestrator
from pairgate.pairing.registry import SessionRegistry
from pairgate.pairing.retry import Sleep, default_sleep
from pairgate.utils.cleanup import cleanup_orphaned_resources
from pairgate.web.exception_handlers import register_exception_handlers
from pairgate.web.middleware import (
    BrandingHeadersMiddleware,
    GracefulShutdownMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)
from pairgate.web.routers.health import router as health_router
from pairgate.web.routers.pair import router as pair_router

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"

# Seconds to wait for in-flight requests and session cleanup on shutdown
SHUTDOWN_TIMEOUT = 10.0


class AppState:
    """Application state container for graceful shutdown."""

    def __init__(self) -> None:
        self.shutting_down = False
        self.active_connections = 0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown.

    Handles:
    - Startup: create data directories and remove orphaned session state
    - Shutdown: reject new requests, then cancel running pairing sessions
      (each still removes its own directory)
    """
    import asyncio

    settings: Settings = app.state.settings

    logger.info("=" * 60)
    logger.info(f"PairGate v{__version__} starting up")
    logger.info(
        f"Python: {platform.python_version()}, OS: {platform.system()} {platform.release()}"
    )
    logger.info("=" * 60)
    app.state.app_state = AppState()

    logger.info(f"Configuration: host={settings.host}, port={settings.port}")
    logger.info(f"Sessions directory: {settings.sessions_dir}")

    if settings.debug:
        logger.warning(
            "DEBUG MODE ENABLED - error responses include exception details. "
            "Set PAIRGATE_DEBUG=false for production deployments."
        )

    for error in settings.ensure_data_dirs():
        logger.error(error)

    cleanup_orphaned_resources(
        data_dir=settings.data_dir,
        sessions_dir=settings.sessions_dir,
        purge_sessions=settings.purge_orphans_on_startup,
    )

    if app.state.orchestrator.factory is None:
        logger.warning("No conduit factory configured; /pair will answer with errors")

    logger.info("Application startup complete")

    yield

    logger.info("Initiating graceful shutdown")
    app.state.app_state.shutting_down = True

    loop = asyncio.get_running_loop()
    start_time = loop.time()
    while app.state.app_state.active_connections > 0:
        elapsed = loop.time() - start_time
        if elapsed > SHUTDOWN_TIMEOUT:
            logger.warning(
                f"Shutdown timeout reached with {app.state.app_state.active_connections} "
                "active connections still running. Forcing shutdown."
            )
            break
        await asyncio.sleep(0.5)

    registry: SessionRegistry = app.state.registry
    cancelled = await registry.shutdown(timeout=SHUTDOWN_TIMEOUT)
    if cancelled:
        logger.info(f"Cancelled {cancelled} pairing session(s)")

    logger.info("Graceful shutdown complete")


def create_app(
    *,
    settings: Settings | None = None,
    conduit_factory: ConduitFactory | None = None,
    sleep: Sleep = default_sleep,
) -> FastAPI:
    """Create and configure FastAPI application.

    This factory pattern allows creating isolated app instances for testing
    and configuring different environments.

    Args:
        settings: Settings instance. If None, uses get_settings().
        conduit_factory: Conduit factory. If None, loaded from
            ``settings.conduit_factory``.
        sleep: Sleep function for pairing session waits

    Returns:
        Configured FastAPI application instance

    Example:
        ```python
        app = create_app(settings=Settings(debug=True))
        # Run with: uvicorn pairgate.web.app:app
        ```
    """
    if settings is None:
        settings = get_settings()

    if conduit_factory is None:
        conduit_factory = load_conduit_factory(settings.conduit_factory)

    app = FastAPI(
        title=settings.project_name,
        description="Pairing code service for linking devices to a messaging account",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.orchestrator = PairingOrchestrator.from_settings(
        settings, conduit_factory, sleep=sleep
    )
    app.state.registry = SessionRegistry()

    register_exception_handlers(app)

    # Order matters: first added = last executed
    app.add_middleware(
        BrandingHeadersMiddleware,
        powered_by=settings.powered_by,
        project=settings.project_name,
        signature=settings.signature,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(GracefulShutdownMiddleware)

    if STATIC_DIR.exists():
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    app.include_router(health_router)
    app.include_router(pair_router)

    return app


# Default app instance for uvicorn
app = create_app()
