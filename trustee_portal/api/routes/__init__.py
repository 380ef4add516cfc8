"""
Trustee Portal - API Routes
"""

from __future__ import annotations

from trustee_portal.api.routes import auth, health, invitations, organizations

__all__ = ["auth", "health", "invitations", "organizations"]
