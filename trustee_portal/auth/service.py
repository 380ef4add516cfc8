"""
Trustee Portal - Authentication Flow

Registration, login with lockout, tenant selection, refresh-token rotation,
logout, and the password and email-verification flows.
"""

from __future__ import annotations

import math
import re
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from trustee_portal.auth.audit import AuditAction, AuditLogger
from trustee_portal.auth.models import (
    AuthResult,
    CurrentSession,
    OrganizationSummary,
    RequestMeta,
    membership_payload,
    organization_payload,
    user_payload,
)
from trustee_portal.auth.password import (
    burn_verification_time,
    hash_password_async,
    needs_rehash,
    validate_password_strength,
    verify_password_async,
)
from trustee_portal.auth.rbac import Role, parse_role
from trustee_portal.auth.tokens import AccessTokenClaims, TokenPair, TokenService, get_token_service
from trustee_portal.core.config import get_settings
from trustee_portal.core.exceptions import (
    AccountDeactivatedError,
    AccountLockedError,
    EmailExistsError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotOrgMemberError,
    OrgSuspendedError,
    SlugExistsError,
    TrialExpiredError,
    ValidationError,
    WeakPasswordError,
)
from trustee_portal.core.logging import LoggerMixin, redact_email
from trustee_portal.core.tasks import fire_and_forget
from trustee_portal.core.types import SubscriptionStatus, utcnow
from trustee_portal.notifications.email import EmailService, get_email_service
from trustee_portal.observability.metrics import get_metrics
from trustee_portal.storage.models import OrganizationModel, UserModel
from trustee_portal.storage.repository import (
    MemberRepository,
    OrganizationRepository,
    UserRepository,
)

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")
MIN_SLUG_LENGTH = 3


def check_organization_access(organization: OrganizationModel) -> None:
    """Deny tenant context for suspended organizations and lapsed trials."""
    if not organization.is_active or organization.subscription_status == SubscriptionStatus.SUSPENDED.value:
        raise OrgSuspendedError()
    if (
        organization.subscription_status == SubscriptionStatus.TRIAL.value
        and organization.trial_ends_at is not None
        and organization.trial_ends_at < utcnow()
    ):
        raise TrialExpiredError()


class AuthService(LoggerMixin):
    """
    Authentication flow over one unit of work.

    Every blocking step (hashing, storage round-trips) is awaited; side
    effects such as email are scheduled out of band.
    """

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
        self.tokens = token_service or get_token_service()
        self.email = email_service or get_email_service()
        self.audit = audit_logger or AuditLogger.for_session(session)
        self.settings = get_settings()
        self.metrics = get_metrics()

    # -------------------------------------------------------------------------
    # Token issuance
    # -------------------------------------------------------------------------

    async def issue_tokens(
        self,
        user: UserModel,
        organization_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> TokenPair:
        """Issue a pair and overwrite the user's single stored refresh hash."""
        pair, refresh_hash = self.tokens.issue_token_pair(user, organization_id, role)
        await self.users.set_refresh_token(user.id, refresh_hash, pair.refresh_expires_at)
        return pair

    async def organizations_for(self, user_id: str) -> list[OrganizationSummary]:
        rows = await self.members.list_active_for_user(user_id)
        return [OrganizationSummary.from_rows(member, org) for member, org in rows]

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    async def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        organization_name: str,
        organization_slug: str,
        meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        """
        Register a user together with a new organization they own.

        Args:
            email: Login email (case-insensitive)
            password: Plain password, checked against the strength policy
            first_name: Given name
            last_name: Family name
            organization_name: Display name of the new tenant
            organization_slug: URL-safe unique tenant handle
            meta: Caller metadata for the audit trail

        Returns:
            AuthResult scoped to the new organization with the OWNER role
        """
        meta = meta or RequestMeta()

        is_valid, errors = validate_password_strength(password)
        if not is_valid:
            raise WeakPasswordError(errors)

        slug = organization_slug.strip().lower()
        if len(slug) < MIN_SLUG_LENGTH or not SLUG_PATTERN.match(slug):
            raise ValidationError(
                "Slug must be at least 3 characters of lowercase letters, numbers and hyphens",
                field="organizationSlug",
            )

        if await self.users.get_by_email(email) is not None:
            raise EmailExistsError()
        if await self.organizations.slug_exists(slug):
            raise SlugExistsError()

        now = utcnow()
        verification_token, verification_hash = self.tokens.generate_opaque_token(32)
        user = await self.users.create(
            email=email,
            password_hash=await hash_password_async(password),
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email_verified=False,
            verification_token_hash=verification_hash,
            verification_token_expires_at=now + timedelta(
                hours=self.settings.EMAIL_VERIFICATION_EXPIRE_HOURS
            ),
        )

        plan = self.settings.DEFAULT_PLAN
        plan_config = self.settings.get_plans().get(plan, {})
        organization = await self.organizations.create(
            name=organization_name.strip(),
            slug=slug,
            contact_email=user.email,
            plan=plan,
            subscription_status=SubscriptionStatus.TRIAL.value,
            trial_ends_at=now + timedelta(days=self.settings.TRIAL_PERIOD_DAYS),
            max_members=plan_config.get("max_members", 5),
            default_term_length_years=self.settings.DEFAULT_TERM_LENGTH_YEARS,
            created_by=user.id,
        )
        await self.members.create(
            organization_id=organization.id,
            user_id=user.id,
            role=Role.OWNER.value,
            joined_at=now,
        )

        tokens = await self.issue_tokens(user, organization.id, Role.OWNER.value)

        await self.audit.log(
            AuditAction.CREATE,
            "organization",
            organization_id=organization.id,
            user_id=user.id,
            resource_id=organization.id,
            details={"orgName": organization.name, "role": Role.OWNER.value},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )

        fire_and_forget(
            self.email.send_welcome(user.email, user.first_name, organization.name),
            name="email:welcome",
        )
        fire_and_forget(
            self.email.send_email_verification(user.email, verification_token),
            name="email:verification",
        )

        self.logger.info(
            "Registered organization",
            organization_id=organization.id,
            slug=slug,
            user=redact_email(user.email),
        )

        return AuthResult(
            user=user_payload(user, role=Role.OWNER.value),
            organization=organization_payload(organization, role=Role.OWNER.value),
            requires_email_verification=True,
            tokens=tokens,
        )

    # -------------------------------------------------------------------------
    # Login
    # -------------------------------------------------------------------------

    async def login(
        self,
        email: str,
        password: str,
        organization_id: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        """
        Authenticate with email and password.

        Lookup, lockout check, password verify, active check, tenant
        resolution, trial/suspension gate, then token issuance.

        Args:
            email: Login email
            password: Plain password
            organization_id: Tenant to log into; auto-selected when omitted
            meta: Caller metadata for the audit trail

        Returns:
            AuthResult; with several memberships and no ``organization_id``
            the tokens carry no tenant and ``requires_organization_selection``
            is set.
        """
        meta = meta or RequestMeta()
        user = await self.users.get_by_email(email)

        if user is None:
            await burn_verification_time(password)
            self.metrics.track_login("invalid_credentials")
            await self.audit.log(
                AuditAction.LOGIN_FAILED,
                "session",
                details={"reason": "user_not_found", "email": redact_email(email)},
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
            )
            raise InvalidCredentialsError()

        now = utcnow()
        if user.locked_until is not None:
            if user.locked_until > now:
                minutes = math.ceil((user.locked_until - now).total_seconds() / 60)
                self.metrics.track_login("locked")
                raise AccountLockedError(
                    f"Account is locked. Try again in {minutes} minutes",
                    minutes_remaining=minutes,
                )
            # Lock window elapsed; start a fresh count
            await self.users.update(user.id, {"failed_login_attempts": 0, "locked_until": None})

        if not await verify_password_async(password, user.password_hash):
            await self._record_failed_attempt(user, meta)

        if not user.is_active:
            self.metrics.track_login("deactivated")
            raise AccountDeactivatedError()

        updates: dict[str, Any] = {}
        if needs_rehash(user.password_hash):
            updates["password_hash"] = await hash_password_async(password)
        if updates:
            await self.users.update(user.id, updates)
        await self.users.record_successful_login(user.id)

        memberships = await self.members.list_active_for_user(user.id)

        if organization_id:
            member = await self.members.get_active(user.id, organization_id)
            if member is None:
                raise NotOrgMemberError()
            organization = await self.organizations.get(organization_id)
            if organization is None:
                raise NotOrgMemberError()
        elif len(memberships) == 1:
            member, organization = memberships[0]
        elif len(memberships) > 1:
            tokens = await self.issue_tokens(user)
            await self._audit_login(user, None, meta, details={"organizationSelection": True})
            self.metrics.track_login("selection_required")
            return AuthResult(
                user=user_payload(user),
                organizations=[OrganizationSummary.from_rows(m, o) for m, o in memberships],
                requires_organization_selection=True,
                tokens=tokens,
            )
        else:
            member, organization = None, None

        if organization is not None:
            check_organization_access(organization)

        role = member.role if member is not None else None
        tokens = await self.issue_tokens(
            user,
            organization.id if organization is not None else None,
            role,
        )
        await self._audit_login(user, organization.id if organization is not None else None, meta)
        self.metrics.track_login("success")

        return AuthResult(
            user=user_payload(user),
            organization=organization_payload(organization, role) if organization is not None else None,
            tokens=tokens,
        )

    async def _record_failed_attempt(self, user: UserModel, meta: RequestMeta) -> None:
        """Count a bad password, lock at the threshold, and always raise."""
        attempts = await self.users.increment_failed_attempts(user.id)

        await self.audit.log(
            AuditAction.LOGIN_FAILED,
            "session",
            user_id=user.id,
            details={"reason": "invalid_password", "failedAttempts": attempts},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )

        if attempts < self.settings.MAX_LOGIN_ATTEMPTS:
            self.metrics.track_login("invalid_credentials")
            raise InvalidCredentialsError()

        lockout_minutes = self.settings.LOCKOUT_DURATION_MINUTES
        await self.users.lock(user.id, utcnow() + timedelta(minutes=lockout_minutes))

        await self.audit.log(
            AuditAction.ACCOUNT_LOCKED,
            "user",
            user_id=user.id,
            resource_id=user.id,
            details={"reason": "too_many_failed_attempts", "failedAttempts": attempts},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        self.metrics.track_login("locked")
        self.metrics.track_lockout()
        self.logger.warning("Account locked", user_id=user.id, failed_attempts=attempts)

        fire_and_forget(
            self.email.send_security_alert(
                user.email,
                "Your account was locked after repeated failed sign-in attempts",
                f"Sign-in is disabled for {lockout_minutes} minutes.",
            ),
            name="email:security_alert",
        )
        raise AccountLockedError(
            f"Too many failed login attempts. Account locked for {lockout_minutes} minutes",
            minutes_remaining=lockout_minutes,
        )

    async def _audit_login(
        self,
        user: UserModel,
        organization_id: Optional[str],
        meta: RequestMeta,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        await self.audit.log(
            AuditAction.LOGIN,
            "session",
            organization_id=organization_id,
            user_id=user.id,
            details=details,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )

    # -------------------------------------------------------------------------
    # Tenant selection and refresh
    # -------------------------------------------------------------------------

    async def select_organization(
        self,
        user_id: str,
        organization_id: str,
        meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        """Re-scope an existing session to another organization the user belongs to."""
        meta = meta or RequestMeta()
        user = await self.users.get(user_id)
        if user is None:
            raise InvalidTokenError("User not found")
        if not user.is_active:
            raise AccountDeactivatedError()

        member = await self.members.get_active(user.id, organization_id)
        organization = await self.organizations.get(organization_id) if member else None
        if member is None or organization is None:
            raise NotOrgMemberError()

        check_organization_access(organization)

        tokens = await self.issue_tokens(user, organization.id, member.role)
        await self.audit.log(
            AuditAction.UPDATE,
            "session",
            organization_id=organization.id,
            user_id=user.id,
            details={"selectedOrganization": organization.id},
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )

        return AuthResult(
            user=user_payload(user),
            organization=organization_payload(organization, member.role),
            tokens=tokens,
        )

    async def refresh(
        self,
        refresh_token: Optional[str],
        organization_id: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> AuthResult:
        """
        Exchange a refresh token for a new pair, rotating the refresh token.

        The swap is conditioned on the stored hash at write time, so two
        concurrent refreshes with the same token cannot both succeed.

        Args:
            refresh_token: Opaque token from the cookie or API body
            organization_id: Tenant to scope the new access token to; the
                most recently joined active membership when omitted
            meta: Caller metadata for the audit trail
        """
        meta = meta or RequestMeta()
        if not refresh_token:
            raise InvalidTokenError("Refresh token required")

        current_hash = self.tokens.hash_token(refresh_token)
        user = await self.users.get_by_refresh_hash(current_hash)
        if (
            user is None
            or user.refresh_token_expires_at is None
            or user.refresh_token_expires_at <= utcnow()
        ):
            self.metrics.track_refresh("invalid")
            raise InvalidTokenError("Invalid or expired refresh token")
        if not user.is_active:
            raise AccountDeactivatedError()

        member, organization = None, None
        if organization_id:
            member = await self.members.get_active(user.id, organization_id)
            organization = await self.organizations.get(organization_id) if member else None
            if member is None or organization is None:
                raise NotOrgMemberError()
        else:
            memberships = await self.members.list_active_for_user(user.id)
            if memberships:
                member, organization = memberships[0]

        if organization is not None:
            check_organization_access(organization)

        role = member.role if member is not None else None
        pair, new_hash = self.tokens.issue_token_pair(
            user,
            organization.id if organization is not None else None,
            role,
        )
        rotated = await self.users.rotate_refresh_token(
            user.id, current_hash, new_hash, pair.refresh_expires_at
        )
        if not rotated:
            self.metrics.track_refresh("reused")
            self.logger.warning("Refresh token reuse rejected", user_id=user.id)
            raise InvalidTokenError("Refresh token has already been used")

        await self.audit.log(
            AuditAction.TOKEN_REFRESH,
            "session",
            organization_id=organization.id if organization is not None else None,
            user_id=user.id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        self.metrics.track_refresh("success")

        return AuthResult(
            user=user_payload(user),
            organization=organization_payload(organization, role) if organization is not None else None,
            tokens=pair,
        )

    async def logout(
        self,
        user_id: str,
        organization_id: Optional[str] = None,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        """Forget the stored refresh hash so a retained cookie can no longer mint tokens."""
        meta = meta or RequestMeta()
        await self.users.set_refresh_token(user_id, None, None)
        await self.audit.log(
            AuditAction.LOGOUT,
            "session",
            organization_id=organization_id,
            user_id=user_id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )

    # -------------------------------------------------------------------------
    # Session resolution
    # -------------------------------------------------------------------------

    async def build_current_session(self, claims: AccessTokenClaims) -> CurrentSession:
        """
        Resolve verified claims against live rows.

        The role always comes from the active membership for the token's
        organization; the role claim is ignored.
        """
        user = await self.users.get(claims.sub)
        if user is None:
            raise InvalidTokenError("User not found")
        if not user.is_active:
            raise AccountDeactivatedError()

        member = None
        if claims.organization_id:
            member = await self.members.get_active(user.id, claims.organization_id)

        return CurrentSession(
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_super_admin=bool(user.is_super_admin),
            email_verified=bool(user.email_verified),
            organization_id=claims.organization_id,
            member_id=member.id if member is not None else None,
            role=parse_role(member.role) if member is not None else None,
        )

    async def get_me(self, current: CurrentSession) -> dict[str, Any]:
        user = await self.users.get(current.user_id)
        if user is None:
            raise InvalidTokenError("User not found")

        data: dict[str, Any] = {
            "user": {
                **user_payload(user),
                "createdAt": user.created_at.isoformat() if user.created_at else None,
            },
            "permissions": current.permissions,
            "organizations": [
                o.model_dump(by_alias=True) for o in await self.organizations_for(user.id)
            ],
        }

        if current.organization_id and current.member_id:
            member = await self.members.get(current.member_id)
            organization = await self.organizations.get(current.organization_id)
            if member is not None and organization is not None:
                data["organization"] = organization_payload(organization, member.role)
                data["membership"] = membership_payload(member)

        return data

    # -------------------------------------------------------------------------
    # Password and email flows
    # -------------------------------------------------------------------------

    async def request_password_reset(self, email: str, meta: Optional[RequestMeta] = None) -> None:
        """Always succeeds from the caller's view; unknown emails are only logged."""
        meta = meta or RequestMeta()
        user = await self.users.get_by_email(email)
        if user is None or not user.is_active:
            self.logger.info("Password reset requested for unknown account", email=redact_email(email))
            return

        token, token_hash = self.tokens.generate_opaque_token(32)
        await self.users.update(
            user.id,
            {
                "password_reset_token_hash": token_hash,
                "password_reset_expires_at": utcnow() + timedelta(
                    minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES
                ),
            },
        )
        await self.audit.log(
            AuditAction.PASSWORD_RESET_REQUEST,
            "user",
            user_id=user.id,
            resource_id=user.id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        fire_and_forget(
            self.email.send_password_reset(user.email, token),
            name="email:password_reset",
        )

    async def reset_password(
        self,
        token: str,
        new_password: str,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        """Consume a reset token; clears lockout state and signs out every session."""
        meta = meta or RequestMeta()
        user = await self.users.get_by_reset_hash(self.tokens.hash_token(token))
        if (
            user is None
            or user.password_reset_expires_at is None
            or user.password_reset_expires_at <= utcnow()
        ):
            raise InvalidTokenError("Invalid or expired reset token")

        is_valid, errors = validate_password_strength(new_password)
        if not is_valid:
            raise WeakPasswordError(errors)

        await self.users.update(
            user.id,
            {
                "password_hash": await hash_password_async(new_password),
                "password_changed_at": utcnow(),
                "password_reset_token_hash": None,
                "password_reset_expires_at": None,
                "failed_login_attempts": 0,
                "locked_until": None,
                "refresh_token_hash": None,
                "refresh_token_expires_at": None,
            },
        )
        await self.audit.log(
            AuditAction.PASSWORD_RESET,
            "user",
            user_id=user.id,
            resource_id=user.id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        fire_and_forget(
            self.email.send_password_changed(user.email),
            name="email:password_changed",
        )

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        meta: Optional[RequestMeta] = None,
    ) -> None:
        meta = meta or RequestMeta()
        user = await self.users.get(user_id)
        if user is None:
            raise InvalidTokenError("User not found")

        if not await verify_password_async(current_password, user.password_hash):
            raise ValidationError(
                "Current password is incorrect",
                code="INVALID_PASSWORD",
                field="currentPassword",
            )

        is_valid, errors = validate_password_strength(new_password)
        if not is_valid:
            raise WeakPasswordError(errors)
        if new_password == current_password:
            raise ValidationError(
                "New password must be different from the current password",
                field="newPassword",
            )

        await self.users.update(
            user.id,
            {
                "password_hash": await hash_password_async(new_password),
                "password_changed_at": utcnow(),
                "refresh_token_hash": None,
                "refresh_token_expires_at": None,
            },
        )
        await self.audit.log(
            AuditAction.PASSWORD_CHANGE,
            "user",
            user_id=user.id,
            resource_id=user.id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
        fire_and_forget(
            self.email.send_password_changed(user.email),
            name="email:password_changed",
        )

    async def verify_email(self, token: str, meta: Optional[RequestMeta] = None) -> None:
        meta = meta or RequestMeta()
        user = await self.users.get_by_verification_hash(self.tokens.hash_token(token))
        if (
            user is None
            or user.verification_token_expires_at is None
            or user.verification_token_expires_at <= utcnow()
        ):
            raise InvalidTokenError("Invalid or expired verification token")

        await self.users.update(
            user.id,
            {
                "email_verified": True,
                "verification_token_hash": None,
                "verification_token_expires_at": None,
            },
        )
        await self.audit.log(
            AuditAction.EMAIL_VERIFIED,
            "user",
            user_id=user.id,
            resource_id=user.id,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
        )
