"""
Trustee Portal - Health Check Routes
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from trustee_portal.core.config import get_settings
from trustee_portal.core.types import utcnow
from trustee_portal.observability.metrics import get_metrics
from trustee_portal.storage import get_cache, get_database


router = APIRouter()

API_VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""
    status: str
    timestamp: str
    version: str
    components: dict[str, dict[str, Any]]


def cache_enabled() -> bool:
    return get_settings().RATE_LIMIT_BACKEND == "redis"


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=utcnow().isoformat(),
        version=API_VERSION,
    )


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check():
    """
    Detailed health check with component status.

    The database is critical; the Redis counter store is only checked when
    it backs rate limiting.
    """
    components: dict[str, dict[str, Any]] = {}

    # Check database
    try:
        db = get_database()
        if db.is_connected:
            components["database"] = await db.health_check()
        else:
            components["database"] = {"status": "disconnected", "latency_ms": 0}
    except Exception as e:
        components["database"] = {"status": "error", "error": str(e), "latency_ms": 0}

    # Check cache
    if cache_enabled():
        try:
            cache = get_cache()
            if cache.is_connected:
                components["cache"] = await cache.health_check()
            else:
                components["cache"] = {"status": "disconnected", "latency_ms": 0}
        except Exception as e:
            components["cache"] = {"status": "error", "error": str(e), "latency_ms": 0}

    # Determine overall status
    overall_status = "healthy" if all(
        c.get("status") == "healthy" for c in components.values()
    ) else "degraded"

    # Mark as unhealthy if database is down (critical)
    if components.get("database", {}).get("status") != "healthy":
        overall_status = "unhealthy"

    return DetailedHealthResponse(
        status=overall_status,
        timestamp=utcnow().isoformat(),
        version=API_VERSION,
        components=components,
    )


@router.get("/ready")
async def readiness_check():
    """
    Kubernetes readiness probe.

    Returns 200 if the database is connected, 503 otherwise.
    """
    checks = {}
    all_ready = True

    # Check database (critical)
    try:
        db = get_database()
        if db.is_connected:
            checks["database"] = "connected"
        else:
            checks["database"] = "disconnected"
            all_ready = False
    except Exception as e:
        checks["database"] = f"error: {str(e)}"
        all_ready = False

    # Check cache (optional - rate limiting fails open)
    if cache_enabled():
        try:
            checks["cache"] = "connected" if get_cache().is_connected else "disconnected"
        except Exception as e:
            checks["cache"] = f"error: {str(e)}"

    response_data = {"ready": all_ready, "checks": checks}
    status_code = 200 if all_ready else 503

    return JSONResponse(content=response_data, status_code=status_code)


@router.get("/live")
async def liveness_check():
    """Kubernetes liveness probe."""
    return {"alive": True}


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus scrape endpoint."""
    collector = get_metrics()
    return Response(content=collector.get_metrics(), media_type=collector.content_type)
