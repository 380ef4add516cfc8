"""
Trustee Portal - Invitation Service

Invitation lifecycle: pending -> accepted | cancelled | expired. At most one
pending invitation exists per (organization, email); inviting again while
one is pending resends on the same row. Deactivated former members are
reactivated directly instead of being sent a token.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trustee_portal.auth.audit import AuditAction, AuditLogger
from trustee_portal.auth.models import (
    AuthResult,
    CurrentSession,
    RequestMeta,
    isoformat,
    membership_payload,
    organization_payload,
    user_payload,
)
from trustee_portal.auth.password import hash_password_async, validate_password_strength
from trustee_portal.auth.rbac import ROLE_DISPLAY_NAMES, Role, get_rbac_manager, parse_role
from trustee_portal.auth.service import AuthService, check_organization_access
from trustee_portal.auth.tokens import TokenService, get_token_service
from trustee_portal.core.config import get_settings
from trustee_portal.core.exceptions import (
    AccountDeactivatedError,
    AlreadyMemberError,
    InsufficientRoleError,
    InvalidInvitationError,
    MemberLimitReachedError,
    NotFoundError,
    NotOrgMemberError,
    OrgMembershipRequiredError,
    ValidationError,
    WeakPasswordError,
)
from trustee_portal.core.logging import LoggerMixin, redact_email
from trustee_portal.core.tasks import fire_and_forget
from trustee_portal.core.types import InvitationStatus, utcnow
from trustee_portal.notifications.email import EmailService, get_email_service
from trustee_portal.observability.metrics import get_metrics
from trustee_portal.storage.models import OrganizationInvitationModel, OrganizationModel
from trustee_portal.storage.repository import (
    InvitationRepository,
    MemberRepository,
    OrganizationRepository,
    UserRepository,
)


def add_years(start: date, years: int) -> date:
    """Same calendar day ``years`` later; Feb 29 falls back to Feb 28."""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


def invitation_status(invitation: OrganizationInvitationModel, now=None) -> InvitationStatus:
    now = now or utcnow()
    if invitation.accepted_at is not None:
        return InvitationStatus.ACCEPTED
    if invitation.cancelled_at is not None:
        return InvitationStatus.CANCELLED
    if invitation.expires_at <= now:
        return InvitationStatus.EXPIRED
    return InvitationStatus.PENDING


def invitation_payload(invitation: OrganizationInvitationModel) -> dict[str, Any]:
    return {
        "id": invitation.id,
        "email": invitation.email,
        "role": invitation.role,
        "department": invitation.department,
        "title": invitation.title,
        "termStartDate": isoformat(invitation.term_start_date),
        "termLengthYears": invitation.term_length_years,
        "message": invitation.message,
        "invitedBy": invitation.invited_by,
        "invitedAt": isoformat(invitation.created_at),
        "expiresAt": isoformat(invitation.expires_at),
        "status": invitation_status(invitation).value,
    }


class InvitationService(LoggerMixin):
    """Create, resend, cancel, validate and accept tenant invitations."""

    def __init__(
        self,
        session: AsyncSession,
        token_service: Optional[TokenService] = None,
        email_service: Optional[EmailService] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.session = session
        self.users = UserRepository(session)
        self.organizations = OrganizationRepository(session)
        self.members = MemberRepository(session)
        self.invitations = InvitationRepository(session)
        self.tokens = token_service or get_token_service()
        self.email = email_service or get_email_service()
        self.audit = audit_logger or AuditLogger.for_session(session)
        self.auth = AuthService(session, self.tokens, self.email, self.audit)
        self.rbac = get_rbac_manager()
        self.settings = get_settings()
        self.metrics = get_metrics()

    def accept_url(self, token: str) -> str:
        return f"{self.settings.FRONTEND_URL.rstrip('/')}/accept-invitation?token={token}"

    def _inviter_role(self, current: CurrentSession) -> Role:
        """Effective role for invitation checks; super admins act with full rank."""
        if current.organization_id is None:
            raise OrgMembershipRequiredError()
        if current.is_super_admin:
            return Role.SUPER_ADMIN
        if current.role is None:
            raise NotOrgMemberError()
        return current.role

    async def _get_organization(self, organization_id: str) -> OrganizationModel:
        organization = await self.organizations.get(organization_id)
        if organization is None:
            raise NotFoundError("Organization not found", code="ORG_NOT_FOUND")
        return organization

    async def _check_member_limit(self, organization: OrganizationModel) -> None:
        active = await self.members.count_active(organization.id)
        if active >= organization.max_members:
            raise MemberLimitReachedError(organization.max_members)

    # -------------------------------------------------------------------------
    # Create / resend / cancel
    # -------------------------------------------------------------------------

    async def create(
        self,
        current: CurrentSession,
        email: str,
        role: str,
        department: Optional[str] = None,
        title: Optional[str] = None,
        term_start_date: Optional[date] = None,
        term_length_years: Optional[int] = None,
        message: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> dict[str, Any]:
        """
        Invite an email address into the caller's organization.

        Args:
            current: Resolved session of the inviter
            email: Address to invite
            role: Role to grant on acceptance
            department: Optional department carried onto the membership
            title: Optional title carried onto the membership
            term_start_date: Optional start of the member's term
            term_length_years: Term length; defaults to the organization setting
            message: Personal note included in the email
            meta: Caller metadata for the audit trail

        Returns:
            ``{"status": "created" | "resent", "invitation", "acceptUrl"}`` or
            ``{"status": "reactivated", "member"}`` for a returning member
        """
        meta = meta or RequestMeta()
        inviter_role = self._inviter_role(current)

        target_role = parse_role(role)
        if target_role is None or target_role in (Role.SUPER_ADMIN, Role.OWNER):
            raise ValidationError("Invalid role", code="INVALID_ROLE", field="role")
        if not self.rbac.can_manage_role(inviter_role, target_role):
            raise InsufficientRoleError(f"Cannot invite users with role '{target_role.value}'")

        organization = await self._get_organization(current.organization_id)
        check_organization_access(organization)

        email = email.strip().lower()
        existing_user = await self.users.get_by_email(email)
        member = None
        if existing_user is not None:
            member = await self.members.get_by_user_and_org(existing_user.id, organization.id)
            if member is not None and member.is_active:
                raise AlreadyMemberError()

        await self._check_member_limit(organization)
        if member is not None:
            return await self._reactivate(
                current, organization, existing_user, member.id, target_role,
                department, title, meta,
            )

        token, token_hash = self.tokens.generate_opaque_token(32)
        expires_at = utcnow() + timedelta(days=self.settings.INVITATION_EXPIRE_DAYS)
        fields = {
            "role": target_role.value,
            "department": department,
            "title": title,
            "term_start_date": term_start_date,
            "term_length_years": term_length_years or organization.default_term_length_years,
            "message": message,
            "invited_by": current.user_id,
        }

        pending = await self.invitations.get_pending(organization.id, email)
        if pending is not None:
            await self.invitations.refresh_token(pending.id, token_hash, expires_at, fields)
            invitation = await self.invitations.get(pending.id)
            status = "resent"
        else:
            invitation = await self.invitations.create(
                organization_id=organization.id,
                email=email,
                token_hash=token_hash,
                expires_at=expires_at,
                **fields,
            )
            status = "created"

        accept_url = self.accept_url(token)
        fire_and_forget(
            self.email.send_invitation(
                email,
                organization.name,
                f"{current.first_name} {current.last_name}".strip() or current.email,
                ROLE_DISPLAY_NAMES[target_role],
                accept_url,
                message,
            ),
            name="email:invitation",
        )

        await self.audit.log(
            AuditAction.INVITE,
            "invitation",
            organization_id=organization.id,
            user_id=current.user_id,
            resource_id=invitation.id,
            details={"email": redact_email(email), "role": target_role.value, "status": status},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        self.metrics.track_invitation(status)
        self.logger.info(
            "Invitation issued",
            organization_id=organization.id,
            invitation_id=invitation.id,
            status=status,
        )

        return {
            "status": status,
            "invitation": invitation_payload(invitation),
            "acceptUrl": accept_url,
        }

    async def _reactivate(
        self,
        current: CurrentSession,
        organization: OrganizationModel,
        user: Any,
        member_id: str,
        role: Role,
        department: Optional[str],
        title: Optional[str],
        meta: RequestMeta,
    ) -> dict[str, Any]:
        """Bring a deactivated member back with the new role; no token involved."""
        if not await self.members.reactivate(member_id, role.value, invited_by=current.user_id):
            raise AlreadyMemberError()

        updates = {k: v for k, v in (("department", department), ("title", title)) if v is not None}
        if updates:
            await self.members.update(member_id, updates)
        member = await self.members.get(member_id)

        await self.audit.log(
            AuditAction.UPDATE,
            "organization_member",
            organization_id=organization.id,
            user_id=current.user_id,
            resource_id=member_id,
            details={"action": "reactivate", "role": role.value},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        fire_and_forget(
            self.email.send_membership_reactivated(
                user.email, organization.name, ROLE_DISPLAY_NAMES[role]
            ),
            name="email:reactivated",
        )
        self.metrics.track_invitation("reactivated")

        return {"status": "reactivated", "member": membership_payload(member)}

    async def _get_manageable(
        self,
        current: CurrentSession,
        invitation_id: str,
        action: str,
    ) -> OrganizationInvitationModel:
        """Load an invitation of the caller's organization that the caller may act on."""
        self._inviter_role(current)
        invitation = await self.invitations.get(invitation_id)
        if invitation is None or invitation.organization_id != current.organization_id:
            raise NotFoundError("Invitation not found", code="INVITATION_NOT_FOUND")
        if invitation.accepted_at is not None:
            raise ValidationError("Invitation has already been accepted", code="ALREADY_ACCEPTED")
        if invitation.cancelled_at is not None:
            raise InvalidInvitationError("Invitation has been cancelled")

        is_inviter = invitation.invited_by == current.user_id
        if not (
            is_inviter
            or current.is_super_admin
            or (current.role is not None and self.rbac.has_minimum_role(current.role, Role.ADMIN))
        ):
            raise InsufficientRoleError(f"Cannot {action} this invitation")
        return invitation

    async def resend(
        self,
        current: CurrentSession,
        invitation_id: str,
        meta: Optional[RequestMeta] = None,
    ) -> dict[str, Any]:
        """New token and expiry on the same row; the previous link stops working."""
        meta = meta or RequestMeta()
        invitation = await self._get_manageable(current, invitation_id, "resend")
        organization = await self._get_organization(invitation.organization_id)

        token, token_hash = self.tokens.generate_opaque_token(32)
        expires_at = utcnow() + timedelta(days=self.settings.INVITATION_EXPIRE_DAYS)
        if not await self.invitations.refresh_token(invitation.id, token_hash, expires_at):
            raise ValidationError("Invitation has already been accepted", code="ALREADY_ACCEPTED")
        invitation = await self.invitations.get(invitation.id)

        accept_url = self.accept_url(token)
        role = parse_role(invitation.role)
        fire_and_forget(
            self.email.send_invitation(
                invitation.email,
                organization.name,
                f"{current.first_name} {current.last_name}".strip() or current.email,
                ROLE_DISPLAY_NAMES[role] if role else invitation.role,
                accept_url,
                invitation.message,
            ),
            name="email:invitation",
        )
        await self.audit.log(
            AuditAction.UPDATE,
            "invitation",
            organization_id=invitation.organization_id,
            user_id=current.user_id,
            resource_id=invitation.id,
            details={"action": "resend"},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        self.metrics.track_invitation("resent")

        return {"invitation": invitation_payload(invitation), "acceptUrl": accept_url}

    async def cancel(
        self,
        current: CurrentSession,
        invitation_id: str,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        meta = meta or RequestMeta()
        invitation = await self._get_manageable(current, invitation_id, "cancel")
        if not await self.invitations.cancel(invitation.id):
            raise ValidationError("Invitation has already been accepted", code="ALREADY_ACCEPTED")

        await self.audit.log(
            AuditAction.CANCEL_INVITE,
            "invitation",
            organization_id=invitation.organization_id,
            user_id=current.user_id,
            resource_id=invitation.id,
            details={"email": redact_email(invitation.email)},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        self.metrics.track_invitation("cancelled")

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    async def list_pending(self, current: CurrentSession) -> list[dict[str, Any]]:
        self._inviter_role(current)
        invitations = await self.invitations.list_pending(current.organization_id)

        inviter_names: dict[str, str] = {}
        results = []
        for invitation in invitations:
            if invitation.invited_by not in inviter_names:
                inviter = await self.users.get(invitation.invited_by)
                inviter_names[invitation.invited_by] = inviter.full_name if inviter else "Unknown"
            payload = invitation_payload(invitation)
            payload["invitedByName"] = inviter_names[invitation.invited_by]
            results.append(payload)
        return results

    def invitable_roles(self, current: CurrentSession) -> list[dict[str, object]]:
        inviter_role = self._inviter_role(current)
        return [self.rbac.describe_role(role) for role in self.rbac.get_invitable_roles(inviter_role)]

    # -------------------------------------------------------------------------
    # Validate / accept
    # -------------------------------------------------------------------------

    async def validate(self, token: str) -> dict[str, Any]:
        """Public preview of an invitation, or the reason it cannot be used."""
        invitation = await self.invitations.get_by_token_hash(self.tokens.hash_token(token))
        if invitation is None:
            return {"valid": False, "reason": "not_found"}

        status = invitation_status(invitation)
        if status is not InvitationStatus.PENDING:
            return {"valid": False, "reason": status.value}

        organization = await self.organizations.get(invitation.organization_id)
        if organization is None or not organization.is_active:
            return {"valid": False, "reason": "organization_inactive"}

        existing_user = await self.users.get_by_email(invitation.email)
        role = parse_role(invitation.role)
        return {
            "valid": True,
            "invitation": {
                "email": invitation.email,
                "role": invitation.role,
                "roleName": ROLE_DISPLAY_NAMES[role] if role else invitation.role,
                "department": invitation.department,
                "title": invitation.title,
                "message": invitation.message,
                "expiresAt": isoformat(invitation.expires_at),
                "organization": {
                    "id": organization.id,
                    "name": organization.name,
                    "slug": organization.slug,
                },
            },
            "requiresRegistration": existing_user is None,
        }

    async def accept(
        self,
        token: str,
        password: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        """
        Accept an invitation and sign the member in.

        The granted role is always the invitation's role. The invitation is
        claimed with a conditional update before any membership is written,
        so a token can be redeemed once.

        Args:
            token: Opaque invitation token from the link
            password: Required when no account exists for the invited email
            first_name: Required for a new account
            last_name: Required for a new account
            meta: Caller metadata for the audit trail
        """
        meta = meta or RequestMeta()
        invitation = await self.invitations.get_by_token_hash(self.tokens.hash_token(token))
        if invitation is None:
            raise InvalidInvitationError()

        status = invitation_status(invitation)
        if status is InvitationStatus.ACCEPTED:
            raise InvalidInvitationError("Invitation has already been accepted")
        if status is InvitationStatus.CANCELLED:
            raise InvalidInvitationError("Invitation has been cancelled")
        if status is InvitationStatus.EXPIRED:
            raise InvalidInvitationError("Invitation has expired")

        organization = await self.organizations.get(invitation.organization_id)
        if organization is None or not organization.is_active:
            raise InvalidInvitationError("Organization is no longer active")
        check_organization_access(organization)

        user = await self.users.get_by_email(invitation.email)
        existing_member = None
        if user is None:
            if not password:
                raise ValidationError("Password is required to create your account", field="password")
            is_valid, errors = validate_password_strength(password)
            if not is_valid:
                raise WeakPasswordError(errors)
            if not (first_name and first_name.strip()) or not (last_name and last_name.strip()):
                raise ValidationError("First and last name are required", field="firstName")
        else:
            if not user.is_active:
                raise AccountDeactivatedError()
            existing_member = await self.members.get_by_user_and_org(user.id, organization.id)
            if existing_member is not None and existing_member.is_active:
                raise AlreadyMemberError()

        await self._check_member_limit(organization)

        if not await self.invitations.mark_accepted(invitation.id):
            raise InvalidInvitationError("Invitation has already been accepted")

        is_new_user = user is None
        if user is None:
            user = await self.users.create(
                email=invitation.email,
                password_hash=await hash_password_async(password),
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                email_verified=True,
            )
        await self.invitations.set_accepted_by(invitation.id, user.id)

        role = invitation.role
        term_length = invitation.term_length_years or organization.default_term_length_years
        term_start = invitation.term_start_date
        term_end = (
            add_years(term_start, term_length)
            if term_start is not None and organization.enable_term_tracking
            else None
        )
        now = utcnow()
        membership_fields = {
            "department": invitation.department,
            "title": invitation.title,
            "term_start_date": term_start,
            "term_end_date": term_end,
            "term_length_years": term_length,
        }

        if existing_member is not None:
            await self.members.reactivate(existing_member.id, role, invited_by=invitation.invited_by)
            await self.members.update(existing_member.id, membership_fields)
            member_id = existing_member.id
        else:
            member = await self.members.create(
                organization_id=organization.id,
                user_id=user.id,
                role=role,
                is_active=True,
                joined_at=now,
                invited_by=invitation.invited_by,
                invited_at=invitation.created_at,
                **membership_fields,
            )
            member_id = member.id

        tokens = await self.auth.issue_tokens(user, organization.id, role)

        await self.audit.log(
            AuditAction.ACCEPT_INVITE,
            "invitation",
            organization_id=organization.id,
            user_id=user.id,
            resource_id=invitation.id,
            details={"role": role, "memberId": member_id, "newUser": is_new_user},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        self.metrics.track_invitation("accepted")

        if is_new_user:
            fire_and_forget(
                self.email.send_welcome(user.email, user.first_name, organization.name),
                name="email:welcome",
            )
        else:
            parsed = parse_role(role)
            fire_and_forget(
                self.email.send_added_to_organization(
                    user.email,
                    user.first_name,
                    organization.name,
                    ROLE_DISPLAY_NAMES[parsed] if parsed else role,
                ),
                name="email:added_to_organization",
            )
        inviter = await self.users.get(invitation.invited_by)
        if inviter is not None:
            fire_and_forget(
                self.email.send_invitation_accepted(inviter.email, user.full_name, organization.name),
                name="email:invitation_accepted",
            )

        return AuthResult(
            user=user_payload(user, role=role),
            organization=organization_payload(organization, role),
            tokens=tokens,
        )
