"""
Tests for trustee_portal/core/logging.py
"""

import pytest


class TestLogger:
    """Tests for the logging module."""

    def test_get_logger_returns_logger(self):
        """Test that get_logger returns a logger instance."""
        from trustee_portal.core.logging import get_logger

        logger = get_logger("test_module")
        assert logger is not None

    def test_logger_can_log(self):
        """Test that logger can log with structured fields."""
        from trustee_portal.core.logging import get_logger

        logger = get_logger("test_info")
        # Should not raise
        logger.info("Test info message", user_id="user-1")
        logger.error("Test error message", code="X")

    def test_setup_logging(self):
        from trustee_portal.core.logging import get_logger, setup_logging

        setup_logging()
        get_logger("after_setup").info("configured")


class TestLoggerMixin:
    """Tests for LoggerMixin."""

    def test_mixin_provides_logger(self):
        from trustee_portal.core.logging import LoggerMixin

        class Service(LoggerMixin):
            pass

        service = Service()
        assert service.logger is not None
        service.logger.debug("hello")


class TestRedactEmail:
    @pytest.mark.parametrize(
        "email,expected",
        [
            ("alice@example.com", "a***@example.com"),
            ("x@y.z", "x***@y.z"),
            ("not-an-email", "***"),
            ("", "***"),
            (None, "***"),
        ],
    )
    def test_redact(self, email, expected):
        from trustee_portal.core.logging import redact_email

        assert redact_email(email) == expected
