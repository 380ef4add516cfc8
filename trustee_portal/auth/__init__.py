"""
Trustee Portal - Authentication & Authorization Module

Provides:
- Password hashing and strength policy
- Access, refresh and CSRF tokens
- Role-based access control (RBAC)
- Login, refresh and password flows
- Tenant invitations and membership management
"""

from __future__ import annotations

from trustee_portal.auth.audit import AuditAction, AuditLogger
from trustee_portal.auth.password import (
    hash_password,
    verify_password,
    validate_password_strength,
)
from trustee_portal.auth.tokens import (
    TokenService,
    TokenPair,
    AccessTokenClaims,
    get_token_service,
    set_auth_cookies,
    clear_auth_cookies,
)
from trustee_portal.auth.rbac import (
    Permission,
    Role,
    RBACManager,
    get_rbac_manager,
)
from trustee_portal.auth.models import AuthResult, CurrentSession, RequestMeta
from trustee_portal.auth.service import AuthService
from trustee_portal.auth.invitations import InvitationService
from trustee_portal.auth.members import MembershipService
from trustee_portal.auth.dependencies import (
    get_current_session,
    get_optional_session,
    require_permission,
    require_role,
    require_minimum_role,
    require_owner,
    require_super_admin,
    require_admin,
    require_admin_or_chair,
    require_board_member,
    require_compliance,
)

__all__ = [
    # Audit
    "AuditAction",
    "AuditLogger",
    # Passwords
    "hash_password",
    "verify_password",
    "validate_password_strength",
    # Tokens
    "TokenService",
    "TokenPair",
    "AccessTokenClaims",
    "get_token_service",
    "set_auth_cookies",
    "clear_auth_cookies",
    # RBAC
    "Permission",
    "Role",
    "RBACManager",
    "get_rbac_manager",
    # Flows
    "AuthResult",
    "CurrentSession",
    "RequestMeta",
    "AuthService",
    "InvitationService",
    "MembershipService",
    # Dependencies
    "get_current_session",
    "get_optional_session",
    "require_permission",
    "require_role",
    "require_minimum_role",
    "require_owner",
    "require_super_admin",
    "require_admin",
    "require_admin_or_chair",
    "require_board_member",
    "require_compliance",
]
