"""Tests for Prometheus metrics collection."""

import uuid

import pytest
from prometheus_client import REGISTRY


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    @pytest.fixture
    def metrics_collector(self):
        """Create MetricsCollector instance with unique namespace."""
        from trustee_portal.observability.metrics import MetricsCollector
        unique_ns = f"portal_test_{uuid.uuid4().hex[:8]}"
        return MetricsCollector(namespace=unique_ns)

    def sample(self, collector, name, **labels):
        return REGISTRY.get_sample_value(f"{collector.namespace}_{name}", labels or None)

    def test_track_request(self, metrics_collector):
        """Test tracking HTTP requests."""
        metrics_collector.track_request(
            endpoint="/api/auth/login",
            method="POST",
            status=200,
            latency=0.150,
        )
        assert self.sample(
            metrics_collector, "requests_total",
            endpoint="/api/auth/login", method="POST", status="200",
        ) == 1.0

    def test_track_login(self, metrics_collector):
        metrics_collector.track_login("success")
        metrics_collector.track_login("invalid_credentials")
        metrics_collector.track_login("invalid_credentials")
        assert self.sample(metrics_collector, "login_attempts_total", outcome="invalid_credentials") == 2.0

    def test_track_lockout(self, metrics_collector):
        metrics_collector.track_lockout()
        assert self.sample(metrics_collector, "account_lockouts_total") == 1.0

    def test_track_refresh(self, metrics_collector):
        metrics_collector.track_refresh("reused")
        assert self.sample(metrics_collector, "token_refreshes_total", status="reused") == 1.0

    def test_track_invitation(self, metrics_collector):
        metrics_collector.track_invitation("accepted")
        assert self.sample(metrics_collector, "invitations_total", outcome="accepted") == 1.0

    def test_track_rate_limited(self, metrics_collector):
        metrics_collector.track_rate_limited("auth")
        assert self.sample(metrics_collector, "rate_limited_total", scope="auth") == 1.0

    def test_track_error(self, metrics_collector):
        """Test tracking errors."""
        metrics_collector.track_error(error_type="RuntimeError", component="api")
        assert self.sample(metrics_collector, "errors_total", type="RuntimeError", component="api") == 1.0

    def test_get_metrics(self, metrics_collector):
        """Test getting metrics in Prometheus format."""
        metrics_collector.track_lockout()
        output = metrics_collector.get_metrics()
        assert isinstance(output, bytes)
        assert f"{metrics_collector.namespace}_account_lockouts_total".encode() in output
        assert metrics_collector.content_type.startswith("text/plain")


class TestGlobalMetrics:
    """Tests for global metrics functions."""

    def test_get_metrics_singleton(self):
        """Test that get_metrics returns the same instance."""
        from trustee_portal.observability.metrics import get_metrics

        assert get_metrics() is get_metrics()

    def test_convenience_functions(self):
        from trustee_portal.observability.metrics import get_metrics, track_error, track_request

        before = REGISTRY.get_sample_value(
            "portal_errors_total", {"type": "ValueError", "component": "test"}
        ) or 0.0
        track_request("/health", "GET", 200, 0.01)
        track_error("ValueError", "test")
        after = REGISTRY.get_sample_value(
            "portal_errors_total", {"type": "ValueError", "component": "test"}
        )
        assert after == before + 1
        assert get_metrics().namespace == "portal"
