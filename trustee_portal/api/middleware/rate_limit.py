"""
Trustee Portal - Rate Limiting Middleware

Windowed counters in three scopes that can apply to one request at once:
per authenticated user (higher ceiling for super admins), per organization,
and per source IP for anonymous traffic. Authentication endpoints are also
limited per IP on failed responses only, and the most sensitive endpoints
carry a strict route-level limiter.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request, Response
from redis.exceptions import RedisError

from trustee_portal.api.middleware.error_handler import error_response
from trustee_portal.auth.models import client_ip
from trustee_portal.auth.tokens import extract_access_token, get_token_service
from trustee_portal.core.config import get_settings
from trustee_portal.core.exceptions import CacheError, RateLimitedError
from trustee_portal.core.logging import get_logger
from trustee_portal.observability.metrics import get_metrics
from trustee_portal.storage.cache import get_cache
from trustee_portal.storage.counters import (
    CounterStore,
    InMemoryCounterStore,
    RedisCounterStore,
    WindowState,
)


logger = get_logger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/health/detailed", "/ready", "/live", "/metrics"})

# Counted per IP on failed responses only
AUTH_PATHS = frozenset({
    "/api/auth/login",
    "/api/auth/register",
    "/api/auth/forgot-password",
})

# Counter backend failures; the limiter fails open on these
STORE_ERRORS = (CacheError, RedisError, OSError)


@dataclass(frozen=True)
class RateLimitConfig:
    """Maximum hits per window for one scope."""
    max_requests: int
    window_seconds: int


def get_rate_limits() -> dict[str, RateLimitConfig]:
    """Per-scope limits from settings."""
    settings = get_settings()
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    return {
        "user": RateLimitConfig(settings.RATE_LIMIT_USER_MAX, window),
        "super_admin": RateLimitConfig(settings.RATE_LIMIT_SUPER_ADMIN_MAX, window),
        "ip": RateLimitConfig(settings.RATE_LIMIT_IP_MAX, window),
        "org": RateLimitConfig(settings.RATE_LIMIT_ORG_MAX, window),
        "auth": RateLimitConfig(
            settings.RATE_LIMIT_AUTH_MAX, settings.RATE_LIMIT_AUTH_WINDOW_SECONDS
        ),
        "strict": RateLimitConfig(
            settings.RATE_LIMIT_STRICT_MAX, settings.RATE_LIMIT_STRICT_WINDOW_SECONDS
        ),
    }


# =============================================================================
# Counter store
# =============================================================================

_counter_store: Optional[CounterStore] = None


def get_counter_store() -> CounterStore:
    """Counter store selected by RATE_LIMIT_BACKEND."""
    global _counter_store
    if _counter_store is None:
        if get_settings().RATE_LIMIT_BACKEND == "redis":
            _counter_store = RedisCounterStore(get_cache())
        else:
            _counter_store = InMemoryCounterStore()
    return _counter_store


def set_counter_store(store: Optional[CounterStore]) -> None:
    """Swap the counter store (None re-selects from settings on next use)."""
    global _counter_store
    _counter_store = store


async def run_sweep(store: CounterStore, interval_seconds: float) -> None:
    """Evict expired windows on a fixed interval until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            evicted = await store.evict_expired()
        except STORE_ERRORS as e:
            logger.warning("Rate limit sweep failed", error=str(e))
            continue
        if evicted:
            logger.debug("Rate limit windows evicted", count=evicted)


# =============================================================================
# Middleware
# =============================================================================

def rate_limited_response(scope: str, state: WindowState, config: RateLimitConfig) -> Response:
    retry_after = state.retry_after()
    get_metrics().track_rate_limited(scope)
    return error_response(
        429,
        "RATE_LIMITED",
        "Too many requests, please try again later",
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(config.max_requests),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(retry_after),
        },
        retryAfter=retry_after,
    )


def request_scopes(request: Request, limits: dict[str, RateLimitConfig]) -> list[tuple[str, str, RateLimitConfig]]:
    """
    Scopes that apply to a request.

    Identity comes from the access-token cookie, verified statelessly; a
    missing or invalid token falls back to the source IP.
    """
    claims = get_token_service().verify_access_token(extract_access_token(request))
    if claims is None:
        return [("ip", f"ip:{client_ip(request)}", limits["ip"])]

    scopes = [(
        "user",
        f"user:{claims.sub}",
        limits["super_admin"] if claims.is_super_admin else limits["user"],
    )]
    if claims.organization_id:
        scopes.append(("org", f"org:{claims.organization_id}", limits["org"]))
    return scopes


async def rate_limit_middleware(request: Request, call_next: Callable) -> Response:
    """
    Rate limiting middleware.

    Applies every matching scope and adds rate limit headers for the
    tightest one to the response.

    Auth endpoints reserve a slot in the per-IP auth window before the
    handler runs, so concurrent attempts cannot all pass on the same count.
    The slot is given back when the response turns out not to be a failure.
    """
    settings = get_settings()
    path = request.url.path

    # Skip rate limiting for health checks
    if not settings.RATE_LIMIT_ENABLED or path in EXEMPT_PATHS:
        return await call_next(request)

    store = get_counter_store()
    limits = get_rate_limits()
    auth_key = f"auth:{client_ip(request)}" if path in AUTH_PATHS else None
    auth_reserved = False

    tightest: Optional[tuple[int, RateLimitConfig, WindowState]] = None
    try:
        for scope, key, config in request_scopes(request, limits):
            state = await store.increment(key, config.window_seconds)
            remaining = config.max_requests - state.count
            if remaining < 0:
                logger.warning("Rate limit exceeded", scope=scope, key=key, path=path)
                return rate_limited_response(scope, state, config)
            if tightest is None or remaining < tightest[0]:
                tightest = (remaining, config, state)

        if auth_key is not None:
            failures = await store.increment(auth_key, limits["auth"].window_seconds)
            auth_reserved = True
            if failures.count > limits["auth"].max_requests:
                logger.warning("Auth rate limit exceeded", path=path, key=auth_key)
                return rate_limited_response("auth", failures, limits["auth"])
    except STORE_ERRORS as e:
        logger.warning("Rate limit check failed, allowing request", error=str(e))
        return await call_next(request)

    # Process request
    response = await call_next(request)

    # Only failures keep their slot; lockout responses are throttled by the account lock
    if auth_reserved and (response.status_code < 400 or response.status_code == 423):
        try:
            await store.release(auth_key)
        except STORE_ERRORS as e:
            logger.warning("Auth rate limit slot not released", error=str(e))

    # Add rate limit headers to response
    if tightest is not None:
        remaining, config, state = tightest
        response.headers["X-RateLimit-Limit"] = str(config.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(state.retry_after())

    return response


# FastAPI dependency for route-level rate limiting
class RateLimiter:
    """
    Dependency for route-level rate limiting, keyed by path and source IP.

    Usage:
        @router.post("/reset-password", dependencies=[Depends(RateLimiter())])
        async def reset_password(...):
            ...
    """

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        scope: str = "strict",
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.scope = scope

    def _config(self) -> RateLimitConfig:
        default = get_rate_limits()["strict"]
        return RateLimitConfig(
            self.max_requests or default.max_requests,
            self.window_seconds or default.window_seconds,
        )

    async def __call__(self, request: Request) -> None:
        if not get_settings().RATE_LIMIT_ENABLED:
            return

        config = self._config()
        key = f"{self.scope}:{request.url.path}:{client_ip(request)}"
        try:
            state = await get_counter_store().increment(key, config.window_seconds)
        except STORE_ERRORS as e:
            logger.warning("Rate limit check failed, allowing request", error=str(e))
            return

        if state.count > config.max_requests:
            get_metrics().track_rate_limited(self.scope)
            logger.warning("Strict rate limit exceeded", key=key)
            raise RateLimitedError(state.retry_after())
