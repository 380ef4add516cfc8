from __future__ import annotations

from trustee_portal.api.middleware.csrf import csrf_middleware
from trustee_portal.api.middleware.error_handler import (
    error_handler_middleware,
    error_response,
    validation_exception_handler,
)
from trustee_portal.api.middleware.logging import logging_middleware
from trustee_portal.api.middleware.rate_limit import (
    rate_limit_middleware,
    RateLimiter,
    RateLimitConfig,
    get_counter_store,
    get_rate_limits,
    run_sweep,
    set_counter_store,
)

__all__ = [
    "csrf_middleware",
    "error_handler_middleware",
    "error_response",
    "validation_exception_handler",
    "logging_middleware",
    "rate_limit_middleware",
    "RateLimiter",
    "RateLimitConfig",
    "get_counter_store",
    "get_rate_limits",
    "run_sweep",
    "set_counter_store",
]
