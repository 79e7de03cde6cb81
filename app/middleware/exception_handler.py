"""Global exception handlers for the FastAPI application.

Every error leaves the API as ``{"error", "detail", "request_id"}``.
Stack traces are logged server-side and **never** sent to the client.
"""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.errors import PluffyError, ValidationError, format_error_response

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str:
    """Request ID set by :class:`RequestIDMiddleware`, or a fresh UUID-4."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


# ------------------------------------------------------------------
# Individual exception handlers
# ------------------------------------------------------------------

async def global_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for any unhandled exception -- returns 500."""
    request_id = _get_request_id(request)
    logger.error(
        "Unhandled exception on %s %s [request_id=%s]",
        request.method,
        request.url.path,
        request_id,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=format_error_response(
            error="Internal Server Error",
            detail="Internal server error",
            request_id=request_id,
        ),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Handle Starlette/FastAPI ``HTTPException`` -- preserves status code."""
    request_id = _get_request_id(request)
    logger.warning(
        "HTTP %s on %s %s [request_id=%s]: %s",
        exc.status_code,
        request.method,
        request.url.path,
        request_id,
        exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            error=str(exc.detail) if exc.detail else "Error",
            detail=str(exc.detail) if exc.detail else None,
            request_id=request_id,
        ),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies / params rejected by FastAPI -- 422."""
    request_id = _get_request_id(request)
    errors = exc.errors()
    logger.warning(
        "Validation error on %s %s [request_id=%s]: %s",
        request.method,
        request.url.path,
        request_id,
        errors,
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=format_error_response(
            error="Validation failed",
            detail=errors,
            request_id=request_id,
        ),
    )


async def submission_validation_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    """Domain :class:`ValidationError` -- 422 naming the broken constraint."""
    request_id = _get_request_id(request)
    body = format_error_response(
        error="Validation failed", detail=str(exc), request_id=request_id,
    )
    body["constraint"] = exc.constraint
    return JSONResponse(status_code=exc.status_code, content=body)


async def pluffy_error_handler(
    request: Request, exc: PluffyError
) -> JSONResponse:
    """Handle domain :class:`PluffyError` subclasses -- maps to HTTP status."""
    request_id = _get_request_id(request)
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s [request_id=%s]",
            type(exc).__name__, request.method, request.url.path, request_id,
            exc_info=exc,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            error=str(exc),
            detail=str(exc),
            request_id=request_id,
        ),
    )


# ------------------------------------------------------------------
# Registration helper
# ------------------------------------------------------------------

def setup_exception_handlers(app: FastAPI) -> None:
    """Register all global exception handlers on *app*.

    Call this **after** the app is created but **before** routers are
    included so that every route is covered.
    """
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, submission_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PluffyError, pluffy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]
