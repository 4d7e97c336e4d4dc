"""Custom exception handlers for branded, production-safe error responses."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from fastapi import Request, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

SUGGESTED_PATHS = ["/pair", "/chronicle", "/health"]


def _get_error_id(request: Request) -> str:
    """Get request ID for error tracking."""
    return getattr(request.state, "request_id", "unknown")


def _is_debug(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return bool(getattr(settings, "debug", False))


async def http_exception_handler(
    request: Request, exc: HTTPException | Exception
) -> JSONResponse:
    """Handle HTTPException; 404s get a branded body with suggested paths."""
    error_id = _get_error_id(request)

    if not isinstance(exc, HTTPException | StarletteHTTPException):
        exc = HTTPException(status_code=500, detail=str(exc))

    if exc.status_code == status.HTTP_404_NOT_FOUND:
        logger.info(f"Unknown path requested: {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={
                "error": "Path Not Found",
                "message": "This pathway does not exist in the chronicles.",
                "suggested_paths": SUGGESTED_PATHS,
            },
        )

    logger.warning(
        f"HTTP {exc.status_code} error: {exc.detail} "
        f"(request_id={error_id}, path={request.url.path})"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


def _sanitize_validation_errors(errors: Any) -> list[dict[str, Any]]:
    """Drop echoed input values; they may contain phone numbers."""
    sanitized = []
    for error in errors:
        sanitized.append(
            {
                "loc": list(error.get("loc", ())),
                "msg": error.get("msg", ""),
                "type": error.get("type", ""),
            }
        )
    return sanitized


async def validation_exception_handler(
    request: Request, exc: RequestValidationError | Exception
) -> JSONResponse:
    """Handle validation errors with sanitized output."""
    error_id = _get_error_id(request)

    if not isinstance(exc, RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": "Invalid input data", "errors": [{"msg": str(exc)}]},
        )

    errors = _sanitize_validation_errors(exc.errors())
    logger.warning(f"Validation error on {request.url.path}: {errors} (request_id={error_id})")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Invalid input data", "errors": errors},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions with production-safe error messages.

    In debug mode the exception type and message are included.
    """
    error_id = _get_error_id(request)

    logger.exception(
        f"Unhandled exception in {request.method} {request.url.path} (request_id={error_id}): {exc}"
    )

    content: dict[str, Any] = {
        "error": "Internal Communion Disruption",
        "message": "The service experienced an unexpected disturbance.",
        "resolution": "Please try again shortly.",
        "timestamp": datetime.now(UTC).isoformat(),
        "request_id": error_id,
    }
    if _is_debug(request):
        content["error_type"] = type(exc).__name__
        content["error_message"] = str(exc)

    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all custom exception handlers."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.debug("Registered custom exception handlers")
