"""
Trustee Portal - Membership Management
"""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trustee_portal.auth.audit import AuditAction, AuditLogger
from trustee_portal.auth.models import CurrentSession, RequestMeta, membership_payload, user_payload
from trustee_portal.auth.rbac import Role, get_rbac_manager, parse_role
from trustee_portal.core.exceptions import (
    InsufficientRoleError,
    NotFoundError,
    OrgMembershipRequiredError,
    ValidationError,
)
from trustee_portal.core.logging import LoggerMixin
from trustee_portal.storage.models import OrganizationMemberModel
from trustee_portal.storage.repository import MemberRepository


class MembershipService(LoggerMixin):
    """List, update and soft-remove members of the caller's organization."""

    def __init__(self, session: AsyncSession, audit_logger: Optional[AuditLogger] = None):
        self.session = session
        self.members = MemberRepository(session)
        self.audit = audit_logger or AuditLogger.for_session(session)
        self.rbac = get_rbac_manager()

    @staticmethod
    def _actor_role(current: CurrentSession) -> Optional[Role]:
        return Role.SUPER_ADMIN if current.is_super_admin else current.role

    async def _get_member(self, current: CurrentSession, member_id: str) -> OrganizationMemberModel:
        if current.organization_id is None:
            raise OrgMembershipRequiredError()
        member = await self.members.get(member_id)
        if member is None or member.organization_id != current.organization_id:
            raise NotFoundError("Member not found", code="MEMBER_NOT_FOUND")
        return member

    async def list_members(
        self,
        current: CurrentSession,
        include_inactive: bool = False,
    ) -> list[dict[str, Any]]:
        if current.organization_id is None:
            raise OrgMembershipRequiredError()
        rows = await self.members.list_for_org(current.organization_id, include_inactive)
        return [
            {**membership_payload(member), "user": user_payload(user)}
            for member, user in rows
        ]

    async def update_member(
        self,
        current: CurrentSession,
        member_id: str,
        role: Optional[str] = None,
        department: Optional[str] = None,
        title: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> dict[str, Any]:
        """
        Change a member's role, department or title.

        Role changes go through ``can_transition_role``; nobody changes
        their own role.
        """
        meta = meta or RequestMeta()
        member = await self._get_member(current, member_id)

        updates: dict[str, Any] = {}
        if department is not None:
            updates["department"] = department
        if title is not None:
            updates["title"] = title

        previous_role = member.role
        if role is not None and role != member.role:
            if member.user_id == current.user_id:
                raise ValidationError("You cannot change your own role", code="CANNOT_MODIFY_SELF")
            new_role = parse_role(role)
            if new_role is None:
                raise ValidationError("Invalid role", code="INVALID_ROLE", field="role")
            allowed, reason = self.rbac.can_transition_role(
                member.role, new_role, self._actor_role(current)
            )
            if not allowed:
                raise InsufficientRoleError(reason or "Cannot change this role")
            updates["role"] = new_role.value

        if not updates:
            return membership_payload(member)

        await self.members.update(member.id, updates)
        member = await self.members.get(member.id)

        if "role" in updates:
            await self.audit.log(
                AuditAction.ROLE_CHANGE,
                "organization_member",
                organization_id=member.organization_id,
                user_id=current.user_id,
                resource_id=member.id,
                details={"from": previous_role, "to": updates["role"], "targetUserId": member.user_id},
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
            )
        else:
            await self.audit.log(
                AuditAction.UPDATE,
                "organization_member",
                organization_id=member.organization_id,
                user_id=current.user_id,
                resource_id=member.id,
                details={"fields": sorted(updates)},
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
            )

        return membership_payload(member)

    async def remove_member(
        self,
        current: CurrentSession,
        member_id: str,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        """Soft delete. Owners can only be removed by owners or super admins."""
        meta = meta or RequestMeta()
        member = await self._get_member(current, member_id)

        if member.user_id == current.user_id:
            raise ValidationError("You cannot remove yourself", code="CANNOT_REMOVE_SELF")
        if (
            member.role == Role.OWNER.value
            and not current.is_super_admin
            and current.role is not Role.OWNER
        ):
            raise InsufficientRoleError("Only an owner can remove another owner")

        await self.members.deactivate(member.id)
        await self.audit.log(
            AuditAction.DELETE,
            "organization_member",
            organization_id=member.organization_id,
            user_id=current.user_id,
            resource_id=member.id,
            details={"targetUserId": member.user_id, "role": member.role},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        self.logger.info(
            "Member removed",
            organization_id=member.organization_id,
            member_id=member.id,
        )
