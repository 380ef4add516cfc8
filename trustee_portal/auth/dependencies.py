"""
Trustee Portal - FastAPI Authentication Dependencies

Session resolution and request guards. Every guard applies the super-admin
bypass first and raises before the handler body runs.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from trustee_portal.auth.invitations import InvitationService
from trustee_portal.auth.members import MembershipService
from trustee_portal.auth.models import CurrentSession
from trustee_portal.auth.rbac import (
    ADMIN_OR_CHAIR_ROLES,
    ADMIN_ROLES,
    BOARD_ROLES,
    COMPLIANCE_ROLES,
    Permission,
    Role,
    get_rbac_manager,
)
from trustee_portal.auth.service import AuthService
from trustee_portal.auth.tokens import extract_access_token, get_token_service
from trustee_portal.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InsufficientPermissionsError,
    InsufficientRoleError,
    InvalidTokenError,
    OrgMembershipRequiredError,
)
from trustee_portal.storage.database import get_session

API_CLIENT_HEADER = "X-Client-Type"


def wants_token_body(request: Request) -> bool:
    """API clients without cookie support ask for tokens in the body."""
    return request.headers.get(API_CLIENT_HEADER, "").lower() == "api"


# =============================================================================
# Services
# =============================================================================

async def get_auth_service(session: AsyncSession = Depends(get_session)) -> AuthService:
    return AuthService(session)


async def get_invitation_service(
    session: AsyncSession = Depends(get_session),
) -> InvitationService:
    return InvitationService(session)


async def get_membership_service(
    session: AsyncSession = Depends(get_session),
) -> MembershipService:
    return MembershipService(session)


# =============================================================================
# Session resolution
# =============================================================================

async def get_current_session(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> CurrentSession:
    """
    Resolve the caller from the access-token cookie.

    Raises 401 when the cookie is missing or fails verification, 403 when
    the account has been deactivated since the token was issued.
    """
    token = extract_access_token(request)
    if not token:
        raise AuthenticationError()

    claims = get_token_service().verify_access_token(token)
    if claims is None:
        raise InvalidTokenError()

    current = await auth_service.build_current_session(claims)
    request.state.user_id = current.user_id
    request.state.organization_id = current.organization_id
    return current


async def get_optional_session(
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> Optional[CurrentSession]:
    """Resolve the caller if a valid token is present, or None."""
    try:
        return await get_current_session(request, auth_service)
    except AuthenticationError:
        return None


# =============================================================================
# Guards
# =============================================================================

def require_permission(*permissions: Permission):
    """
    Dependency that requires every listed permission in the current organization.

    Usage:
        @router.post("/invitations")
        async def invite(current: CurrentSession = Depends(require_permission(Permission.USER_INVITE))):
            ...
    """
    required = [p.value for p in permissions]

    async def check_permission(
        current: CurrentSession = Depends(get_current_session),
    ) -> CurrentSession:
        if current.is_super_admin:
            return current
        if not current.has_membership:
            raise OrgMembershipRequiredError()
        if not get_rbac_manager().has_all_permissions(current.role, permissions):
            raise InsufficientPermissionsError(required)
        return current

    return check_permission


def require_role(*roles: Role):
    """Dependency that requires one of the listed roles."""
    allowed = set(roles)

    async def check_role(
        current: CurrentSession = Depends(get_current_session),
    ) -> CurrentSession:
        if current.is_super_admin:
            return current
        if not current.has_membership:
            raise OrgMembershipRequiredError()
        if current.role not in allowed:
            raise InsufficientRoleError(
                f"Required role: {', '.join(r.value for r in roles)}"
            )
        return current

    return check_role


def require_minimum_role(minimum: Role):
    """Dependency that requires a role at or above ``minimum`` in the hierarchy."""

    async def check_minimum_role(
        current: CurrentSession = Depends(get_current_session),
    ) -> CurrentSession:
        if current.is_super_admin:
            return current
        if not current.has_membership:
            raise OrgMembershipRequiredError()
        if not get_rbac_manager().has_minimum_role(current.role, minimum):
            raise InsufficientRoleError(f"Minimum role required: {minimum.value}")
        return current

    return check_minimum_role


async def require_owner(
    current: CurrentSession = Depends(get_current_session),
) -> CurrentSession:
    if current.is_super_admin:
        return current
    if current.role is not Role.OWNER:
        raise AuthorizationError("Organization owner access required", code="OWNER_REQUIRED")
    return current


async def require_super_admin(
    current: CurrentSession = Depends(get_current_session),
) -> CurrentSession:
    if not current.is_super_admin:
        raise AuthorizationError("Super admin access required", code="SUPER_ADMIN_REQUIRED")
    return current


# Presets
require_admin = require_role(*ADMIN_ROLES)
require_admin_or_chair = require_role(*ADMIN_OR_CHAIR_ROLES)
require_board_member = require_role(*BOARD_ROLES)
require_compliance = require_role(*COMPLIANCE_ROLES)
