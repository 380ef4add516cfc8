"""
Trustee Portal - Error Handler Middleware
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from trustee_portal.core.exceptions import PortalException, RateLimitedError
from trustee_portal.core.logging import get_logger
from trustee_portal.observability.metrics import track_error

logger = get_logger(__name__)


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    """Build the ``{"success": false, "error": {...}}`` envelope."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    error.update(extra)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


def portal_exception_response(e: PortalException) -> JSONResponse:
    if isinstance(e, RateLimitedError):
        return error_response(
            e.status_code,
            e.code,
            e.message,
            headers={"Retry-After": str(e.retry_after)},
            retryAfter=e.retry_after,
        )
    return error_response(e.status_code, e.code, e.message, e.details)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation failures use the portal envelope with 400."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return error_response(400, "VALIDATION_ERROR", "Invalid request", {"errors": errors})


async def error_handler_middleware(request: Request, call_next) -> Response:
    """Global error handler middleware."""
    try:
        return await call_next(request)
    except PortalException as e:
        log = logger.warning if e.status_code < 500 else logger.error
        log(
            "Portal exception",
            code=e.code,
            message=e.message,
            status_code=e.status_code,
            path=request.url.path,
        )
        return portal_exception_response(e)
    except Exception as e:
        logger.exception("Unhandled exception", error=str(e), path=request.url.path)
        track_error(type(e).__name__, "api")
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")
