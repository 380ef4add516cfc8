"""
Tests for trustee_portal/core/config.py
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError


class TestSettings:
    """Tests for the Settings class."""

    def test_settings_singleton(self):
        """Test that get_settings returns the same instance."""
        from trustee_portal.core.config import get_settings

        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2

    def test_settings_default_values(self):
        """Test default account security values."""
        from trustee_portal.core.config import Settings

        settings = Settings(_env_file=None)
        assert settings.MAX_LOGIN_ATTEMPTS == 5
        assert settings.LOCKOUT_DURATION_MINUTES == 30
        assert settings.REFRESH_TOKEN_EXPIRE_DAYS == 7
        assert settings.INVITATION_EXPIRE_DAYS == 7
        assert settings.RATE_LIMIT_BACKEND == "memory"

    def test_settings_env_override(self):
        """Test that environment variables override defaults."""
        from trustee_portal.core.config import Settings

        with patch.dict(os.environ, {"MAX_LOGIN_ATTEMPTS": "3", "RATE_LIMIT_BACKEND": "redis"}):
            settings = Settings(_env_file=None)
        assert settings.MAX_LOGIN_ATTEMPTS == 3
        assert settings.RATE_LIMIT_BACKEND == "redis"

    def test_cors_origins_list(self):
        from trustee_portal.core.config import Settings

        settings = Settings(_env_file=None, CORS_ORIGINS="http://a.test, http://b.test")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_database_url_format(self):
        """Test database URL configuration."""
        from trustee_portal.core.config import get_settings

        settings = get_settings()
        assert "postgresql" in settings.DATABASE_URL or settings.DATABASE_URL.startswith("sqlite")

    def test_redis_url_format(self):
        from trustee_portal.core.config import get_settings

        assert get_settings().REDIS_URL.startswith("redis://")


class TestSecrets:
    """Tests for signing secret validation."""

    def test_short_secret_rejected(self):
        from trustee_portal.core.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, JWT_SECRET_KEY="too-short")

    def test_dev_secret_rejected_in_production(self):
        from trustee_portal.core.config import Settings

        with pytest.raises(ValidationError):
            Settings(_env_file=None, APP_ENV="production")

    def test_production_with_real_secrets(self):
        from trustee_portal.core.config import Settings

        settings = Settings(
            _env_file=None,
            APP_ENV="production",
            JWT_SECRET_KEY="p" * 48,
            COOKIE_SECRET="c" * 48,
        )
        assert settings.is_production
        assert settings.cookie_secure is True
        assert settings.cookie_samesite == "strict"


class TestEnvironmentDetection:
    """Tests for environment detection."""

    def test_development_cookies(self):
        from trustee_portal.core.config import Settings

        settings = Settings(_env_file=None, APP_ENV="development")
        assert settings.is_production is False
        assert settings.cookie_secure is False
        assert settings.cookie_samesite == "lax"


class TestPlans:
    def test_plans_loaded_from_yaml(self):
        from trustee_portal.core.config import get_settings

        plans = get_settings().get_plans()
        assert plans["starter"]["max_members"] == 5
        assert plans["enterprise"]["max_members"] == 100

    def test_plans_fallback(self):
        """Without a plans file the built-in catalogue is used."""
        from trustee_portal.core.config import DEFAULT_PLANS, Settings

        with patch.object(Settings, "load_yaml_config", return_value={}):
            assert Settings(_env_file=None).get_plans() == DEFAULT_PLANS
