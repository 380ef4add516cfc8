"""
Trustee Portal - Prometheus Metrics
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)

from trustee_portal.core.config import get_settings


class MetricsCollector:
    """
    Prometheus metrics collector for the portal.

    Tracks:
    - Request counts and latencies
    - Login attempts and lockouts
    - Token refreshes
    - Invitation outcomes
    - Rate limit rejections
    """

    def __init__(self, namespace: str = "portal"):
        self.namespace = namespace

        # Request metrics
        self.request_count = Counter(
            f"{namespace}_requests_total",
            "Total number of requests",
            ["endpoint", "method", "status"],
        )

        self.request_latency = Histogram(
            f"{namespace}_request_latency_seconds",
            "Request latency in seconds",
            ["endpoint", "method"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
        )

        self.active_requests = Gauge(
            f"{namespace}_active_requests",
            "Number of active requests",
        )

        # Authentication metrics
        self.login_attempts = Counter(
            f"{namespace}_login_attempts_total",
            "Login attempts by outcome",
            ["outcome"],
        )

        self.lockouts = Counter(
            f"{namespace}_account_lockouts_total",
            "Accounts locked after repeated failures",
        )

        self.token_refreshes = Counter(
            f"{namespace}_token_refreshes_total",
            "Refresh token exchanges",
            ["status"],
        )

        # Invitation metrics
        self.invitations = Counter(
            f"{namespace}_invitations_total",
            "Invitation lifecycle events",
            ["outcome"],
        )

        # Rate limiting
        self.rate_limited = Counter(
            f"{namespace}_rate_limited_total",
            "Requests rejected by the rate limiter",
            ["scope"],
        )

        # Error metrics
        self.errors = Counter(
            f"{namespace}_errors_total",
            "Total errors",
            ["type", "component"],
        )

        # Info metric
        self.info = Info(
            f"{namespace}_info",
            "Trustee portal information",
        )
        self._set_info()

    def _set_info(self) -> None:
        """Set system info metric."""
        settings = get_settings()
        self.info.info({
            "version": "0.1.0",
            "environment": settings.APP_ENV,
        })

    def track_request(
        self,
        endpoint: str,
        method: str,
        status: int,
        latency: float,
    ) -> None:
        """Track an HTTP request."""
        self.request_count.labels(
            endpoint=endpoint,
            method=method,
            status=str(status),
        ).inc()
        self.request_latency.labels(
            endpoint=endpoint,
            method=method,
        ).observe(latency)

    def track_login(self, outcome: str) -> None:
        """Track a login attempt (success, invalid_credentials, locked, ...)."""
        self.login_attempts.labels(outcome=outcome).inc()

    def track_lockout(self) -> None:
        self.lockouts.inc()

    def track_refresh(self, status: str) -> None:
        self.token_refreshes.labels(status=status).inc()

    def track_invitation(self, outcome: str) -> None:
        """Track an invitation event (created, resent, reactivated, accepted, cancelled)."""
        self.invitations.labels(outcome=outcome).inc()

    def track_rate_limited(self, scope: str) -> None:
        self.rate_limited.labels(scope=scope).inc()

    def track_error(
        self,
        error_type: str,
        component: str,
    ) -> None:
        """Track an error."""
        self.errors.labels(
            type=error_type,
            component=component,
        ).inc()

    def get_metrics(self) -> bytes:
        """Get metrics in Prometheus format."""
        return generate_latest(REGISTRY)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


# Global metrics instance
_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get the metrics collector singleton."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


# Convenience functions
def track_request(endpoint: str, method: str, status: int, latency: float) -> None:
    """Track an HTTP request."""
    get_metrics().track_request(endpoint, method, status, latency)


def track_error(error_type: str, component: str) -> None:
    """Track an error."""
    get_metrics().track_error(error_type, component)
