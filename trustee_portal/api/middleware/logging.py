"""
Trustee Portal - Logging Middleware
"""

import time
from uuid import uuid4

import structlog
from fastapi import Request, Response

from trustee_portal.core.logging import get_logger
from trustee_portal.observability.metrics import get_metrics

logger = get_logger(__name__)


async def logging_middleware(request: Request, call_next) -> Response:
    """Request/response logging middleware."""
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    start_time = time.perf_counter()

    # Add request ID to state and to every log line of this request
    request.state.request_id = request_id
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)

    # Log request
    logger.info(
        "Request started",
        method=request.method,
        path=request.url.path,
    )

    metrics = get_metrics()
    metrics.active_requests.inc()
    try:
        response = await call_next(request)
    finally:
        metrics.active_requests.dec()

    # Calculate duration
    duration_ms = (time.perf_counter() - start_time) * 1000

    # Log response
    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    route = request.scope.get("route")
    metrics.track_request(
        endpoint=getattr(route, "path", request.url.path),
        method=request.method,
        status=response.status_code,
        latency=duration_ms / 1000,
    )

    # Add headers
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    return response
