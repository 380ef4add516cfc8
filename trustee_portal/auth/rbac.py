"""
Trustee Portal - Role-Based Access Control

Static role hierarchy and permission matrix. Roles are always evaluated per
organization membership; only the super-admin flag is global.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Union


class Permission(str, Enum):
    """Capability tags."""
    # Organization
    ORG_MANAGE = "org:manage"
    ORG_VIEW = "org:view"
    ORG_DELETE = "org:delete"

    # Users
    USER_CREATE = "user:create"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"
    USER_VIEW = "user:view"
    USER_INVITE = "user:invite"

    # Roles
    ROLE_ASSIGN = "role:assign"
    ROLE_MANAGE = "role:manage"

    # Documents
    DOC_CREATE = "doc:create"
    DOC_UPDATE = "doc:update"
    DOC_DELETE = "doc:delete"
    DOC_VIEW = "doc:view"
    DOC_APPROVE = "doc:approve"

    # Tasks
    TASK_CREATE = "task:create"
    TASK_UPDATE = "task:update"
    TASK_DELETE = "task:delete"
    TASK_VIEW = "task:view"
    TASK_ASSIGN = "task:assign"

    # Meetings
    MEETING_CREATE = "meeting:create"
    MEETING_UPDATE = "meeting:update"
    MEETING_DELETE = "meeting:delete"
    MEETING_VIEW = "meeting:view"
    MEETING_SCHEDULE = "meeting:schedule"

    # Committees
    COMMITTEE_CREATE = "committee:create"
    COMMITTEE_UPDATE = "committee:update"
    COMMITTEE_DELETE = "committee:delete"
    COMMITTEE_VIEW = "committee:view"

    # Compliance, audit and billing
    COMPLIANCE_VIEW = "compliance:view"
    COMPLIANCE_MANAGE = "compliance:manage"
    AUDIT_VIEW = "audit:view"
    BILLING_VIEW = "billing:view"
    BILLING_MANAGE = "billing:manage"

    # Platform (super admin only)
    PLATFORM_ADMIN = "platform:admin"


class Role(str, Enum):
    """Membership roles, highest privilege first."""
    SUPER_ADMIN = "super_admin"
    OWNER = "owner"
    ADMIN = "admin"
    CHAIR = "chair"
    VICE_CHAIR = "vice_chair"
    TREASURER = "treasurer"
    SECRETARY = "secretary"
    MLRO = "mlro"
    COMPLIANCE_OFFICER = "compliance_officer"
    HEALTH_OFFICER = "health_officer"
    TRUSTEE = "trustee"
    VOLUNTEER = "volunteer"
    VIEWER = "viewer"


ROLE_LEVELS: dict[Role, int] = {
    Role.SUPER_ADMIN: 100,
    Role.OWNER: 90,
    Role.ADMIN: 80,
    Role.CHAIR: 75,
    Role.VICE_CHAIR: 70,
    Role.TREASURER: 65,
    Role.SECRETARY: 65,
    Role.MLRO: 60,
    Role.COMPLIANCE_OFFICER: 60,
    Role.HEALTH_OFFICER: 60,
    Role.TRUSTEE: 50,
    Role.VOLUNTEER: 30,
    Role.VIEWER: 10,
}

ROLE_DISPLAY_NAMES: dict[Role, str] = {
    Role.SUPER_ADMIN: "Super Administrator",
    Role.OWNER: "Organization Owner",
    Role.ADMIN: "Administrator",
    Role.CHAIR: "Chair",
    Role.VICE_CHAIR: "Vice Chair",
    Role.TREASURER: "Treasurer",
    Role.SECRETARY: "Secretary",
    Role.MLRO: "MLRO",
    Role.COMPLIANCE_OFFICER: "Compliance Officer",
    Role.HEALTH_OFFICER: "Health Officer",
    Role.TRUSTEE: "Trustee",
    Role.VOLUNTEER: "Volunteer",
    Role.VIEWER: "Viewer",
}

ROLE_DESCRIPTIONS: dict[Role, str] = {
    Role.SUPER_ADMIN: "Platform administrator with access to all organizations",
    Role.OWNER: "Full control over the organization and its settings",
    Role.ADMIN: "Manage users, documents, and most organization settings",
    Role.CHAIR: "Lead the board, approve documents, manage meetings",
    Role.VICE_CHAIR: "Assist the chair and stand in when needed",
    Role.TREASURER: "Manage financial matters and billing",
    Role.SECRETARY: "Manage meetings, minutes, and records",
    Role.MLRO: "Money Laundering Reporting Officer - compliance duties",
    Role.COMPLIANCE_OFFICER: "Ensure regulatory compliance",
    Role.HEALTH_OFFICER: "Health and safety compliance",
    Role.TRUSTEE: "Board member with standard access",
    Role.VOLUNTEER: "Limited access for volunteers",
    Role.VIEWER: "Read-only access to organization content",
}

P = Permission

_COMPLIANCE_ROLE_PERMISSIONS = frozenset({
    P.ORG_VIEW, P.USER_VIEW, P.DOC_VIEW,
    P.COMPLIANCE_VIEW, P.COMPLIANCE_MANAGE, P.AUDIT_VIEW,
})

# Super admin's entry stays empty; it holds every permission implicitly
# (see RBACManager.has_permission).
ROLE_PERMISSIONS: dict[Role, frozenset[Permission]] = {
    Role.SUPER_ADMIN: frozenset(),
    Role.OWNER: frozenset(p for p in Permission if p is not P.PLATFORM_ADMIN),
    Role.ADMIN: frozenset({
        P.ORG_VIEW,
        P.USER_CREATE, P.USER_UPDATE, P.USER_VIEW, P.USER_INVITE,
        P.ROLE_ASSIGN,
        P.DOC_CREATE, P.DOC_UPDATE, P.DOC_VIEW, P.DOC_APPROVE,
        P.TASK_CREATE, P.TASK_UPDATE, P.TASK_VIEW, P.TASK_ASSIGN,
        P.MEETING_CREATE, P.MEETING_UPDATE, P.MEETING_VIEW, P.MEETING_SCHEDULE,
        P.COMMITTEE_CREATE, P.COMMITTEE_UPDATE, P.COMMITTEE_VIEW,
        P.COMPLIANCE_VIEW, P.COMPLIANCE_MANAGE,
        P.BILLING_VIEW,
    }),
    Role.CHAIR: frozenset({
        P.ORG_VIEW,
        P.USER_VIEW, P.USER_INVITE,
        P.DOC_CREATE, P.DOC_UPDATE, P.DOC_VIEW, P.DOC_APPROVE,
        P.TASK_CREATE, P.TASK_UPDATE, P.TASK_VIEW, P.TASK_ASSIGN,
        P.MEETING_CREATE, P.MEETING_UPDATE, P.MEETING_DELETE, P.MEETING_VIEW, P.MEETING_SCHEDULE,
        P.COMMITTEE_CREATE, P.COMMITTEE_UPDATE, P.COMMITTEE_DELETE, P.COMMITTEE_VIEW,
        P.COMPLIANCE_VIEW,
        P.AUDIT_VIEW,
    }),
    Role.VICE_CHAIR: frozenset({
        P.ORG_VIEW,
        P.USER_VIEW,
        P.DOC_CREATE, P.DOC_UPDATE, P.DOC_VIEW,
        P.TASK_CREATE, P.TASK_UPDATE, P.TASK_VIEW, P.TASK_ASSIGN,
        P.MEETING_CREATE, P.MEETING_UPDATE, P.MEETING_VIEW, P.MEETING_SCHEDULE,
        P.COMMITTEE_VIEW,
        P.COMPLIANCE_VIEW,
    }),
    Role.TREASURER: frozenset({
        P.ORG_VIEW,
        P.USER_VIEW,
        P.DOC_VIEW, P.DOC_APPROVE,
        P.TASK_VIEW,
        P.MEETING_VIEW,
        P.COMMITTEE_VIEW,
        P.COMPLIANCE_VIEW,
        P.BILLING_VIEW, P.BILLING_MANAGE,
    }),
    Role.SECRETARY: frozenset({
        P.ORG_VIEW,
        P.USER_VIEW, P.USER_INVITE,
        P.DOC_CREATE, P.DOC_UPDATE, P.DOC_VIEW,
        P.TASK_CREATE, P.TASK_UPDATE, P.TASK_VIEW, P.TASK_ASSIGN,
        P.MEETING_CREATE, P.MEETING_UPDATE, P.MEETING_VIEW, P.MEETING_SCHEDULE,
        P.COMMITTEE_VIEW,
        P.COMPLIANCE_VIEW,
    }),
    Role.MLRO: _COMPLIANCE_ROLE_PERMISSIONS,
    Role.COMPLIANCE_OFFICER: _COMPLIANCE_ROLE_PERMISSIONS,
    Role.HEALTH_OFFICER: frozenset({
        P.ORG_VIEW, P.USER_VIEW, P.DOC_VIEW, P.COMPLIANCE_VIEW,
    }),
    Role.TRUSTEE: frozenset({
        P.ORG_VIEW, P.USER_VIEW, P.DOC_VIEW, P.TASK_VIEW,
        P.MEETING_VIEW, P.COMMITTEE_VIEW, P.COMPLIANCE_VIEW,
    }),
    Role.VOLUNTEER: frozenset({
        P.ORG_VIEW, P.DOC_VIEW, P.TASK_VIEW, P.MEETING_VIEW,
    }),
    Role.VIEWER: frozenset({
        P.ORG_VIEW, P.DOC_VIEW, P.MEETING_VIEW,
    }),
}


def check_role_tables(*tables: dict) -> None:
    """Raise RuntimeError unless every table has exactly one entry per role."""
    for table in tables:
        missing = sorted(role.value for role in set(Role) - set(table))
        extra = sorted(str(key) for key in set(table) - set(Role))
        if missing or extra:
            raise RuntimeError(f"Role table is not exhaustive: missing={missing} extra={extra}")


# Every role must have a level, a display name and a (possibly empty) permission set
check_role_tables(ROLE_LEVELS, ROLE_DISPLAY_NAMES, ROLE_DESCRIPTIONS, ROLE_PERMISSIONS)

# Preset role groups
ADMIN_ROLES = (Role.OWNER, Role.ADMIN)
ADMIN_OR_CHAIR_ROLES = (Role.OWNER, Role.ADMIN, Role.CHAIR)
BOARD_ROLES = (
    Role.OWNER, Role.ADMIN, Role.CHAIR, Role.VICE_CHAIR,
    Role.TREASURER, Role.SECRETARY, Role.TRUSTEE,
)
COMPLIANCE_ROLES = (Role.OWNER, Role.ADMIN, Role.MLRO, Role.COMPLIANCE_OFFICER)

RoleLike = Union[Role, str]
PermissionLike = Union[Permission, str]


def parse_role(value: RoleLike) -> Optional[Role]:
    """Coerce a stored or claimed role; unknown values yield None."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def _parse_permission(value: PermissionLike) -> Optional[Permission]:
    if isinstance(value, Permission):
        return value
    try:
        return Permission(value)
    except ValueError:
        return None


class RBACManager:
    """Role-based access control predicates."""

    def get_role_permissions(self, role: RoleLike) -> frozenset[Permission]:
        """Explicit permissions for a role (super admin's set is implicit)."""
        parsed = parse_role(role)
        if parsed is Role.SUPER_ADMIN:
            return frozenset(Permission)
        if parsed is None:
            return frozenset()
        return ROLE_PERMISSIONS[parsed]

    def has_permission(self, role: RoleLike, permission: PermissionLike) -> bool:
        """Check if a role has a specific permission."""
        parsed = parse_role(role)
        if parsed is None:
            return False
        if parsed is Role.SUPER_ADMIN:
            return True
        perm = _parse_permission(permission)
        return perm is not None and perm in ROLE_PERMISSIONS[parsed]

    def has_any_permission(self, role: RoleLike, permissions: Iterable[PermissionLike]) -> bool:
        """Check if a role has any of the specified permissions."""
        return any(self.has_permission(role, p) for p in permissions)

    def has_all_permissions(self, role: RoleLike, permissions: Iterable[PermissionLike]) -> bool:
        """Check if a role has all of the specified permissions."""
        return all(self.has_permission(role, p) for p in permissions)

    def get_role_level(self, role: RoleLike) -> int:
        parsed = parse_role(role)
        return ROLE_LEVELS[parsed] if parsed else 0

    def compare_roles(self, role_a: RoleLike, role_b: RoleLike) -> int:
        """Positive if ``role_a`` outranks ``role_b``, zero when tied."""
        return self.get_role_level(role_a) - self.get_role_level(role_b)

    def has_minimum_role(self, user_role: RoleLike, required_role: RoleLike) -> bool:
        if parse_role(user_role) is Role.SUPER_ADMIN:
            return True
        return self.get_role_level(user_role) >= self.get_role_level(required_role)

    def can_manage_role(self, manager_role: RoleLike, target_role: RoleLike) -> bool:
        """A manager acts only on roles strictly below their own; nobody manages super admin."""
        manager = parse_role(manager_role)
        target = parse_role(target_role)
        if manager is None or target is None:
            return False
        if target is Role.SUPER_ADMIN:
            return False
        if manager is Role.SUPER_ADMIN:
            return True
        return ROLE_LEVELS[manager] > ROLE_LEVELS[target]

    def get_invitable_roles(self, inviter_role: RoleLike) -> list[Role]:
        """Non-owner, non-super-admin roles the inviter outranks."""
        return [
            role for role in Role
            if role not in (Role.SUPER_ADMIN, Role.OWNER)
            and self.can_manage_role(inviter_role, role)
        ]

    def get_assignable_roles(self, assigner_role: RoleLike) -> list[Role]:
        if parse_role(assigner_role) is Role.SUPER_ADMIN:
            return [role for role in Role if role is not Role.SUPER_ADMIN]
        return self.get_invitable_roles(assigner_role)

    def can_transition_role(
        self,
        current_role: RoleLike,
        new_role: RoleLike,
        changed_by_role: RoleLike,
    ) -> tuple[bool, Optional[str]]:
        """
        Validate a membership role change.

        The changer must be able to manage both the role being removed and
        the role being granted.

        Returns:
            Tuple of (is_valid, reason)
        """
        current = parse_role(current_role)
        new = parse_role(new_role)
        if new is None:
            return False, "Invalid role"
        if current == new:
            return False, "New role must be different from current role"
        if current is Role.SUPER_ADMIN:
            return False, "Cannot modify super administrator roles"
        if new is Role.SUPER_ADMIN:
            return False, "Cannot assign super administrator role"
        if not self.can_manage_role(changed_by_role, new):
            return False, "Insufficient permissions to assign this role"
        if current is None or not self.can_manage_role(changed_by_role, current):
            return False, "Insufficient permissions to modify this role"
        return True, None

    def describe_role(self, role: RoleLike) -> dict[str, object]:
        parsed = parse_role(role)
        if parsed is None:
            return {"value": str(role), "name": str(role), "description": "", "level": 0}
        return {
            "value": parsed.value,
            "name": ROLE_DISPLAY_NAMES[parsed],
            "description": ROLE_DESCRIPTIONS[parsed],
            "level": ROLE_LEVELS[parsed],
        }


# Global RBAC manager instance
_rbac_manager: Optional[RBACManager] = None


def get_rbac_manager() -> RBACManager:
    """Get the RBAC manager singleton."""
    global _rbac_manager
    if _rbac_manager is None:
        _rbac_manager = RBACManager()
    return _rbac_manager
