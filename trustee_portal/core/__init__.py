"""
Trustee Portal - Core Module

This module provides core functionality used throughout the application:
- Configuration management
- Logging
- Custom exceptions
- Shared type definitions
- Background side effects
"""

from trustee_portal.core.config import Settings, get_settings, settings
from trustee_portal.core.exceptions import (
    PortalException,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    RateLimitedError,
    DatabaseError,
    CacheError,
    ConfigurationError,
)
from trustee_portal.core.logging import get_logger, setup_logging, LoggerMixin, redact_email
from trustee_portal.core.tasks import fire_and_forget, drain_background_tasks
from trustee_portal.core.types import InvitationStatus, SubscriptionStatus, utcnow

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "settings",
    # Exceptions
    "PortalException",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "NotFoundError",
    "ValidationError",
    "RateLimitedError",
    "DatabaseError",
    "CacheError",
    "ConfigurationError",
    # Logging
    "get_logger",
    "setup_logging",
    "LoggerMixin",
    "redact_email",
    # Tasks
    "fire_and_forget",
    "drain_background_tasks",
    # Types
    "InvitationStatus",
    "SubscriptionStatus",
    "utcnow",
]
