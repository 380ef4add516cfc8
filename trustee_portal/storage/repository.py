"""
Trustee Portal - Repositories

All mutations of existing rows go through UPDATE statements so that
counters and conditional transitions are decided by the database at write
time rather than by a stale in-memory read.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from trustee_portal.core.logging import LoggerMixin
from trustee_portal.core.types import utcnow
from trustee_portal.storage.models import (
    AuditLogModel,
    OrganizationInvitationModel,
    OrganizationMemberModel,
    OrganizationModel,
    UserModel,
)


class UserRepository(LoggerMixin):
    """Repository for user identity records."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields: Any) -> UserModel:
        """Create a user; the email is stored lowercased."""
        fields["email"] = fields["email"].strip().lower()
        user = UserModel(**fields)
        self._session.add(user)
        await self._session.flush()
        self.logger.debug("Created user", user_id=user.id)
        return user

    async def get(self, user_id: str) -> Optional[UserModel]:
        result = await self._session.execute(
            select(UserModel).where(UserModel.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        """Case-insensitive lookup."""
        result = await self._session.execute(
            select(UserModel).where(func.lower(UserModel.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_by_refresh_hash(self, token_hash: str) -> Optional[UserModel]:
        result = await self._session.execute(
            select(UserModel).where(UserModel.refresh_token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def get_by_reset_hash(self, token_hash: str) -> Optional[UserModel]:
        result = await self._session.execute(
            select(UserModel).where(UserModel.password_reset_token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def get_by_verification_hash(self, token_hash: str) -> Optional[UserModel]:
        result = await self._session.execute(
            select(UserModel).where(UserModel.verification_token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def update(self, user_id: str, updates: dict[str, Any]) -> bool:
        """Update user fields."""
        result = await self._session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(**updates)
        )
        return result.rowcount > 0

    async def increment_failed_attempts(self, user_id: str) -> int:
        """
        Atomically add one failed attempt and return the new count.

        The increment is evaluated by the database; the row lock it takes is
        held until commit, so the follow-up read sees exactly this increment.
        """
        await self._session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(failed_login_attempts=UserModel.failed_login_attempts + 1)
        )
        result = await self._session.execute(
            select(UserModel.failed_login_attempts).where(UserModel.id == user_id)
        )
        return result.scalar_one()

    async def lock(self, user_id: str, until: datetime) -> bool:
        return await self.update(user_id, {"locked_until": until})

    async def record_successful_login(self, user_id: str) -> bool:
        """Clear lockout state and stamp the login time."""
        return await self.update(
            user_id,
            {
                "failed_login_attempts": 0,
                "locked_until": None,
                "last_login_at": utcnow(),
            },
        )

    async def set_refresh_token(
        self,
        user_id: str,
        token_hash: Optional[str],
        expires_at: Optional[datetime],
    ) -> bool:
        """Overwrite the single stored refresh token (None clears it)."""
        return await self.update(
            user_id,
            {"refresh_token_hash": token_hash, "refresh_token_expires_at": expires_at},
        )

    async def rotate_refresh_token(
        self,
        user_id: str,
        current_hash: str,
        new_hash: str,
        expires_at: datetime,
    ) -> bool:
        """
        Swap the refresh token only if the stored hash still equals the one
        presented. Returns False when another refresh won the race.
        """
        result = await self._session.execute(
            update(UserModel)
            .where(
                UserModel.id == user_id,
                UserModel.refresh_token_hash == current_hash,
                UserModel.refresh_token_expires_at > utcnow(),
            )
            .values(refresh_token_hash=new_hash, refresh_token_expires_at=expires_at)
        )
        return result.rowcount == 1


class OrganizationRepository(LoggerMixin):
    """Repository for tenants."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields: Any) -> OrganizationModel:
        organization = OrganizationModel(**fields)
        self._session.add(organization)
        await self._session.flush()
        self.logger.debug("Created organization", organization_id=organization.id)
        return organization

    async def get(self, organization_id: str) -> Optional[OrganizationModel]:
        result = await self._session.execute(
            select(OrganizationModel).where(OrganizationModel.id == organization_id)
        )
        return result.scalar_one_or_none()

    async def slug_exists(self, slug: str) -> bool:
        result = await self._session.execute(
            select(func.count(OrganizationModel.id)).where(OrganizationModel.slug == slug)
        )
        return result.scalar_one() > 0


class MemberRepository(LoggerMixin):
    """Repository for organization memberships."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields: Any) -> OrganizationMemberModel:
        member = OrganizationMemberModel(**fields)
        self._session.add(member)
        await self._session.flush()
        self.logger.debug(
            "Created membership",
            member_id=member.id,
            organization_id=member.organization_id,
            role=member.role,
        )
        return member

    async def get(self, member_id: str) -> Optional[OrganizationMemberModel]:
        result = await self._session.execute(
            select(OrganizationMemberModel).where(OrganizationMemberModel.id == member_id)
        )
        return result.scalar_one_or_none()

    async def get_by_user_and_org(
        self,
        user_id: str,
        organization_id: str,
    ) -> Optional[OrganizationMemberModel]:
        """Membership row regardless of active state."""
        result = await self._session.execute(
            select(OrganizationMemberModel).where(
                OrganizationMemberModel.user_id == user_id,
                OrganizationMemberModel.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_active(
        self,
        user_id: str,
        organization_id: str,
    ) -> Optional[OrganizationMemberModel]:
        result = await self._session.execute(
            select(OrganizationMemberModel).where(
                OrganizationMemberModel.user_id == user_id,
                OrganizationMemberModel.organization_id == organization_id,
                OrganizationMemberModel.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_active_for_user(
        self,
        user_id: str,
    ) -> list[tuple[OrganizationMemberModel, OrganizationModel]]:
        """Active memberships with their organizations, most recent first."""
        result = await self._session.execute(
            select(OrganizationMemberModel, OrganizationModel)
            .join(OrganizationModel, OrganizationModel.id == OrganizationMemberModel.organization_id)
            .where(
                OrganizationMemberModel.user_id == user_id,
                OrganizationMemberModel.is_active.is_(True),
            )
            .order_by(OrganizationMemberModel.joined_at.desc())
        )
        return [(member, organization) for member, organization in result.all()]

    async def list_for_org(
        self,
        organization_id: str,
        include_inactive: bool = False,
    ) -> list[tuple[OrganizationMemberModel, UserModel]]:
        query = (
            select(OrganizationMemberModel, UserModel)
            .join(UserModel, UserModel.id == OrganizationMemberModel.user_id)
            .where(OrganizationMemberModel.organization_id == organization_id)
            .order_by(OrganizationMemberModel.joined_at)
        )
        if not include_inactive:
            query = query.where(OrganizationMemberModel.is_active.is_(True))
        result = await self._session.execute(query)
        return [(member, user) for member, user in result.all()]

    async def count_active(self, organization_id: str) -> int:
        result = await self._session.execute(
            select(func.count(OrganizationMemberModel.id)).where(
                OrganizationMemberModel.organization_id == organization_id,
                OrganizationMemberModel.is_active.is_(True),
            )
        )
        return result.scalar_one()

    async def update(self, member_id: str, updates: dict[str, Any]) -> bool:
        result = await self._session.execute(
            update(OrganizationMemberModel)
            .where(OrganizationMemberModel.id == member_id)
            .values(**updates)
        )
        return result.rowcount > 0

    async def reactivate(
        self,
        member_id: str,
        role: str,
        invited_by: Optional[str] = None,
    ) -> bool:
        """Re-enable a soft-deleted membership with a new role."""
        result = await self._session.execute(
            update(OrganizationMemberModel)
            .where(
                OrganizationMemberModel.id == member_id,
                OrganizationMemberModel.is_active.is_(False),
            )
            .values(
                is_active=True,
                role=role,
                invited_by=invited_by,
                invited_at=utcnow(),
                joined_at=utcnow(),
            )
        )
        return result.rowcount == 1

    async def deactivate(self, member_id: str) -> bool:
        return await self.update(member_id, {"is_active": False})


class InvitationRepository(LoggerMixin):
    """Repository for organization invitations."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def _pending_clause(self, now: datetime):
        return and_(
            OrganizationInvitationModel.accepted_at.is_(None),
            OrganizationInvitationModel.cancelled_at.is_(None),
            OrganizationInvitationModel.expires_at > now,
        )

    async def create(self, **fields: Any) -> OrganizationInvitationModel:
        fields["email"] = fields["email"].strip().lower()
        invitation = OrganizationInvitationModel(**fields)
        self._session.add(invitation)
        await self._session.flush()
        self.logger.debug("Created invitation", invitation_id=invitation.id)
        return invitation

    async def get(self, invitation_id: str) -> Optional[OrganizationInvitationModel]:
        result = await self._session.execute(
            select(OrganizationInvitationModel).where(
                OrganizationInvitationModel.id == invitation_id
            )
        )
        return result.scalar_one_or_none()

    async def get_by_token_hash(self, token_hash: str) -> Optional[OrganizationInvitationModel]:
        result = await self._session.execute(
            select(OrganizationInvitationModel).where(
                OrganizationInvitationModel.token_hash == token_hash
            )
        )
        return result.scalar_one_or_none()

    async def get_pending(
        self,
        organization_id: str,
        email: str,
    ) -> Optional[OrganizationInvitationModel]:
        result = await self._session.execute(
            select(OrganizationInvitationModel)
            .where(
                OrganizationInvitationModel.organization_id == organization_id,
                OrganizationInvitationModel.email == email.strip().lower(),
                self._pending_clause(utcnow()),
            )
            .order_by(OrganizationInvitationModel.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_pending(self, organization_id: str) -> list[OrganizationInvitationModel]:
        result = await self._session.execute(
            select(OrganizationInvitationModel)
            .where(
                OrganizationInvitationModel.organization_id == organization_id,
                self._pending_clause(utcnow()),
            )
            .order_by(OrganizationInvitationModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def refresh_token(
        self,
        invitation_id: str,
        token_hash: str,
        expires_at: datetime,
        updates: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Resend: new token and expiry on the same row."""
        result = await self._session.execute(
            update(OrganizationInvitationModel)
            .where(
                OrganizationInvitationModel.id == invitation_id,
                OrganizationInvitationModel.accepted_at.is_(None),
            )
            .values(token_hash=token_hash, expires_at=expires_at, **(updates or {}))
        )
        return result.rowcount == 1

    async def mark_accepted(self, invitation_id: str, user_id: Optional[str] = None) -> bool:
        """Terminal transition; fails if the invitation is no longer pending."""
        now = utcnow()
        result = await self._session.execute(
            update(OrganizationInvitationModel)
            .where(
                OrganizationInvitationModel.id == invitation_id,
                self._pending_clause(now),
            )
            .values(accepted_at=now, accepted_by=user_id)
        )
        return result.rowcount == 1

    async def set_accepted_by(self, invitation_id: str, user_id: str) -> bool:
        result = await self._session.execute(
            update(OrganizationInvitationModel)
            .where(OrganizationInvitationModel.id == invitation_id)
            .values(accepted_by=user_id)
        )
        return result.rowcount > 0

    async def cancel(self, invitation_id: str) -> bool:
        result = await self._session.execute(
            update(OrganizationInvitationModel)
            .where(
                OrganizationInvitationModel.id == invitation_id,
                OrganizationInvitationModel.accepted_at.is_(None),
                OrganizationInvitationModel.cancelled_at.is_(None),
            )
            .values(cancelled_at=utcnow())
        )
        return result.rowcount == 1


class AuditLogRepository(LoggerMixin):
    """Append-only repository for audit entries."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def write(self, **fields: Any) -> AuditLogModel:
        """
        Insert an entry inside its own savepoint.

        Pending changes are flushed first so their errors stay with the
        caller. A failed insert rolls back only the savepoint and re-raises.
        """
        await self._session.flush()
        entry = AuditLogModel(**fields)
        async with self._session.begin_nested():
            self._session.add(entry)
        return entry

    async def query(
        self,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLogModel]:
        await self._session.flush()
        query = select(AuditLogModel).order_by(AuditLogModel.created_at.desc())

        if organization_id:
            query = query.where(AuditLogModel.organization_id == organization_id)
        if user_id:
            query = query.where(
                or_(AuditLogModel.user_id == user_id, AuditLogModel.resource_id == user_id)
            )
        if action:
            query = query.where(AuditLogModel.action == action)

        query = query.offset(offset).limit(limit)
        result = await self._session.execute(query)
        return list(result.scalars().all())
