"""Global exception handlers for the FastAPI application.

Every error leaves the server as ``{"error", "detail", "request_id"}``.
Stack traces are logged server-side and never sent to the client.
"""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tinyci.errors import CIError, format_error_response

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str:
    """Request id set by :class:`RequestIDMiddleware`, or a fresh UUID-4."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


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
    """Starlette/FastAPI ``HTTPException`` -- status code preserved."""
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


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request body / parameter validation failures -- returns 422."""
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
        status_code=422,
        content=format_error_response(
            error="Validation failed",
            detail=jsonable_errors(errors),
            request_id=request_id,
        ),
    )


async def ci_error_handler(
    request: Request, exc: CIError
) -> JSONResponse:
    """Domain :class:`CIError` subclasses -- mapped to their HTTP status."""
    request_id = _get_request_id(request)
    if exc.status_code >= 500:
        logger.error(
            "%s on %s %s [request_id=%s]: %s",
            type(exc).__name__, request.method, request.url.path, request_id, exc,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(
            error=str(exc),
            detail=str(exc),
            request_id=request_id,
        ),
    )


def jsonable_errors(errors: list) -> list:
    """Strip non-serialisable ``ctx`` entries (exception objects) from pydantic errors."""
    cleaned = []
    for err in errors:
        item = dict(err)
        if "ctx" in item:
            item["ctx"] = {k: str(v) for k, v in item["ctx"].items()}
        cleaned.append(item)
    return cleaned


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all global exception handlers on *app*."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(CIError, ci_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]
