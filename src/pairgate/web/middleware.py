"""HTTP middleware: request IDs, access logging, branding headers, shutdown gate.

Registered by :func:`pairgate.web.app.create_app`. Starlette runs the last
added middleware first, so a request passes through the shutdown gate, then
gets its ID, is logged, and finally receives the branding headers.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from pairgate.utils.logging import clear_correlation_id, set_correlation_id

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]

REQUEST_ID_HEADER = "X-Request-ID"

# Client supplied IDs end up in logs; anything else is replaced
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._\-]{1,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Give every request an ID and echo it in ``X-Request-ID``.

    A well-formed incoming ``X-Request-ID`` is reused; otherwise a UUID4 is
    generated. The ID is stored on ``request.state`` for error handlers and
    its first 16 characters become the logging correlation ID. Pairing
    sessions started by the request inherit that correlation ID.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = incoming if _VALID_REQUEST_ID.match(incoming) else str(uuid.uuid4())

        request.state.request_id = request_id
        set_correlation_id(request_id[:16])
        try:
            response = await call_next(request)
        finally:
            clear_correlation_id()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log: one line when a request arrives, one when it is answered.

    Only the path is logged. Query strings carry phone numbers.
    """

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        started = time.perf_counter()
        route = f"{request.method} {request.url.path}"
        logger.debug(
            f"{route} from {request.client.host if request.client else 'unknown'}",
            extra={"path": request.url.path},
        )

        response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"{route} -> {response.status_code} ({elapsed_ms} ms)",
            extra={"status_code": response.status_code, "duration_ms": elapsed_ms},
        )
        return response


class BrandingHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp every response with the project's identity headers.

    Adds ``X-Powered-By``, ``X-Project`` and ``X-Signature`` (configurable)
    and ``X-Content-Type-Options: nosniff``.
    """

    def __init__(self, app: ASGIApp, powered_by: str, project: str, signature: str) -> None:
        super().__init__(app)
        self.headers = {
            "X-Powered-By": powered_by,
            "X-Project": project,
            "X-Signature": signature,
            "X-Content-Type-Options": "nosniff",
        }

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        response.headers.update(self.headers)
        return response


class GracefulShutdownMiddleware(BaseHTTPMiddleware):
    """Refuse new requests once shutdown has begun and count in-flight ones.

    While ``app.state.app_state.shutting_down`` is set, ``/health`` answers
    ``503 {"status": "shutting_down"}`` so load balancers drain the
    instance, and every other path gets 503 with ``Retry-After``. The
    lifespan waits for ``active_connections`` to reach zero.
    """

    retry_after_seconds = 10

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        app_state = getattr(request.app.state, "app_state", None)
        if app_state is None:
            return await call_next(request)

        if app_state.shutting_down:
            return self._reject(request)

        app_state.active_connections += 1
        try:
            return await call_next(request)
        finally:
            app_state.active_connections -= 1

    def _reject(self, request: Request) -> JSONResponse:
        if request.url.path == "/health":
            return JSONResponse(status_code=503, content={"status": "shutting_down"})

        logger.warning(f"Shutting down; refused {request.method} {request.url.path}")
        return JSONResponse(
            status_code=503,
            content={
                "detail": "Service is shutting down, retry shortly.",
                "status": "shutting_down",
            },
            headers={"Retry-After": str(self.retry_after_seconds)},
        )
