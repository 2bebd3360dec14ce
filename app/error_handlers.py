"""Centralized error handling for the API service."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.errors import ImgGoError, NotFoundError, QueueUnavailable

logger = logging.getLogger("imggo.api.errors")


class ErrorResponse(BaseModel):
    """Structured error response model."""

    error: str = Field(..., description="Error type or name")
    detail: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")
    status_code: int = Field(..., description="HTTP status code")


_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMIT_EXCEEDED",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
}


def error_to_response(error: str, detail: str, status_code: int, code: str | None = None) -> JSONResponse:
    """Create a structured JSON error response."""
    body = ErrorResponse(
        error=error,
        detail=detail,
        code=code or _ERROR_CODES.get(status_code, "UNKNOWN_ERROR"),
        status_code=status_code,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def status_for(exc: ImgGoError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, QueueUnavailable):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException with structured response."""
    return error_to_response(exc.__class__.__name__, str(exc.detail), exc.status_code)


async def imggo_exception_handler(request: Request, exc: ImgGoError) -> JSONResponse:
    """Map pipeline errors onto HTTP status codes."""
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            "request failed",
            extra={"path": request.url.path, "error": str(exc), "error_type": exc.__class__.__name__},
        )
    return error_to_response(exc.__class__.__name__, str(exc), status_code)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions with structured response."""
    logger.exception("Unhandled exception occurred", exc_info=exc)

    detail = "An internal error occurred"
    # Include detailed error in debug mode
    if hasattr(request.app.state, "settings") and request.app.state.settings.debug:
        detail = str(exc)

    return error_to_response(exc.__class__.__name__, detail, status.HTTP_500_INTERNAL_SERVER_ERROR)


def install_error_handlers(app: Any) -> None:
    """Install error handlers on the FastAPI app."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(ImgGoError, imggo_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
