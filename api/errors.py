"""FastAPI exception handlers for Parley errors.

This module provides exception handlers that map ParleyError subclasses
to appropriate HTTP status codes with a standardized response format.

Response Format:
    {
        "error": "ErrorClassName",
        "code": "ERROR_CODE",
        "detail": "Human-readable error message",
        "details": {...}  # Optional additional context
    }

Usage:
    from api.errors import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from parley.errors import (
    ConfigurationError,
    ErrorCode,
    HttpStatusError,
    NetworkError,
    ParleyError,
    RateLimitedError,
    ResponseFormatError,
    RetriesExhaustedError,
    SessionStateError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# HTTP status code mapping for error types; the most specific class wins
ERROR_STATUS_CODES: dict[type[ParleyError], int] = {
    # Configuration errors -> 500 (server configuration issues)
    ConfigurationError: 500,
    # Upstream model endpoint problems -> 502 Bad Gateway
    NetworkError: 502,
    HttpStatusError: 502,
    ResponseFormatError: 502,
    # Passed through so clients can back off
    RateLimitedError: 429,
    # Automatic retries used up; the client may retry later
    RetriesExhaustedError: 503,
    # Superseded or illegal session transitions
    SessionStateError: 409,
    # Validation errors -> 400 (client error)
    ValidationError: 400,
    # Base error -> 500
    ParleyError: 500,
}

# Map specific error codes to HTTP status codes (overrides class-based mapping)
ERROR_CODE_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.VAL_INVALID_INPUT: 400,
    ErrorCode.VAL_MISSING_REQUIRED: 400,
}


def get_status_code_for_error(error: ParleyError) -> int:
    """Determine the appropriate HTTP status code for an error.

    First checks if the error's code has a specific status mapping,
    then walks the error's class hierarchy from most to least specific.

    Args:
        error: The Parley error instance.

    Returns:
        HTTP status code (400-599).
    """
    if error.code in ERROR_CODE_STATUS_CODES:
        return ERROR_CODE_STATUS_CODES[error.code]

    for error_class in type(error).__mro__:
        if error_class in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_class]  # type: ignore[index]

    return 500


def build_error_response(error: ParleyError) -> dict[str, Any]:
    """Build a standardized error response dictionary.

    Args:
        error: The Parley error instance.

    Returns:
        Dictionary with error, code, detail, and optional details fields.
    """
    response: dict[str, Any] = {
        "error": error.__class__.__name__,
        "code": error.code.value,
        "detail": error.message,
    }

    if error.details:
        response["details"] = error.details

    return response


async def parley_error_handler(request: Request, exc: ParleyError) -> JSONResponse:
    """Handle ParleyError and subclasses.

    Args:
        request: The FastAPI request object.
        exc: The Parley error that was raised.

    Returns:
        JSONResponse with appropriate status code and error body.
    """
    status_code = get_status_code_for_error(exc)
    response_body = build_error_response(exc)

    if status_code >= 500 and not isinstance(exc, (NetworkError, HttpStatusError)):
        logger.error(
            "Server error: %s (code=%s, status=%d)",
            exc.message,
            exc.code.value,
            status_code,
            exc_info=exc.cause if exc.cause else exc,
        )
    else:
        logger.warning(
            "Request failed: %s (code=%s, status=%d)",
            exc.message,
            exc.code.value,
            status_code,
        )

    return JSONResponse(status_code=status_code, content=response_body)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle ValidationError with additional field information.

    Args:
        request: The FastAPI request object.
        exc: The validation error that was raised.

    Returns:
        JSONResponse with 400 status and validation details.
    """
    logger.debug(
        "Validation error on %s %s: %s",
        request.method,
        request.url.path,
        exc.message,
    )
    return JSONResponse(status_code=400, content=build_error_response(exc))


async def rate_limited_error_handler(request: Request, exc: RateLimitedError) -> JSONResponse:
    """Handle RateLimitedError, forwarding the upstream 429.

    Args:
        request: The FastAPI request object.
        exc: The rate-limit error that was raised.

    Returns:
        JSONResponse with 429 status.
    """
    logger.warning("Model endpoint rate limited %s %s", request.method, request.url.path)
    return JSONResponse(status_code=429, content=build_error_response(exc))


def register_exception_handlers(app: FastAPI) -> None:
    """Register all Parley exception handlers with a FastAPI app.

    Args:
        app: The FastAPI application instance.
    """
    # Register specific handlers first (most specific to least specific)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitedError, rate_limited_error_handler)

    # Register the base ParleyError handler (catches all ParleyError subclasses)
    app.add_exception_handler(ParleyError, parley_error_handler)

    logger.debug("Registered Parley exception handlers")


__all__ = [
    "ERROR_CODE_STATUS_CODES",
    "ERROR_STATUS_CODES",
    "build_error_response",
    "get_status_code_for_error",
    "parley_error_handler",
    "rate_limited_error_handler",
    "register_exception_handlers",
    "validation_error_handler",
]
