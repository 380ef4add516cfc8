"""
Trustee Portal - Audit Logging
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trustee_portal.core.logging import get_logger
from trustee_portal.storage.repository import AuditLogRepository


logger = get_logger(__name__)


class AuditAction(str, Enum):
    """Audit action types."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VIEW = "view"

    # Authentication
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"
    TOKEN_REFRESH = "token_refresh"

    # Invitations and membership
    INVITE = "invite"
    ACCEPT_INVITE = "accept_invite"
    CANCEL_INVITE = "cancel_invite"
    ROLE_CHANGE = "role_change"

    # Credentials
    PASSWORD_CHANGE = "password_change"
    PASSWORD_RESET_REQUEST = "password_reset_request"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFIED = "email_verified"


class AuditLogger:
    """
    Audit logging service.

    Records security-relevant events. Entries are emitted to the structured
    log immediately and inserted in a savepoint of the request's unit of
    work. A failed insert rolls back only that savepoint and is logged, so
    the surrounding writes still commit.
    """

    def __init__(self, repository: Optional[AuditLogRepository] = None):
        """
        Initialize the audit logger.

        Args:
            repository: Repository for persistent storage; log-only when None
        """
        self.repository = repository

    @classmethod
    def for_session(cls, session: AsyncSession) -> "AuditLogger":
        return cls(AuditLogRepository(session))

    async def log(
        self,
        action: AuditAction,
        resource_type: str,
        organization_id: Optional[str] = None,
        user_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        """
        Log an audit event.

        Args:
            action: The action being logged
            resource_type: Type of resource affected (user, organization_member, ...)
            organization_id: Tenant context
            user_id: Acting user
            resource_id: ID of the resource affected
            details: Additional details about the event
            ip_address: Client IP address
            user_agent: Client user agent
        """
        logger.info(
            "Audit event",
            action=action.value,
            resource_type=resource_type,
            resource_id=resource_id,
            organization_id=organization_id,
            user_id=user_id,
        )

        if self.repository is None:
            return

        try:
            await self.repository.write(
                action=action.value,
                resource_type=resource_type,
                organization_id=organization_id,
                user_id=user_id,
                resource_id=resource_id,
                details=details or {},
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except SQLAlchemyError as e:
            logger.error(
                "Audit log write failed",
                action=action.value,
                resource_type=resource_type,
                error=str(e),
            )
