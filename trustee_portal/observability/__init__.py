"""
Trustee Portal - Observability Module

Provides:
- Prometheus metrics
"""

from __future__ import annotations

from trustee_portal.observability.metrics import (
    MetricsCollector,
    get_metrics,
    track_request,
    track_error,
)

__all__ = [
    "MetricsCollector",
    "get_metrics",
    "track_request",
    "track_error",
]
