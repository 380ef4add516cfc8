"""
Trustee Portal - Notifications Module
"""

from __future__ import annotations

from trustee_portal.notifications.email import EmailService, get_email_service

__all__ = ["EmailService", "get_email_service"]
