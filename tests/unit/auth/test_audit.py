"""Tests for audit logging."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from trustee_portal.auth.audit import AuditAction, AuditLogger
from trustee_portal.auth.service import AuthService
from trustee_portal.storage.repository import AuditLogRepository, UserRepository


class TestAuditAction:
    """Tests for AuditAction enum."""

    def test_action_values(self):
        assert AuditAction.LOGIN.value == "login"
        assert AuditAction.LOGIN_FAILED.value == "login_failed"
        assert AuditAction.ACCEPT_INVITE.value == "accept_invite"
        assert AuditAction.ROLE_CHANGE.value == "role_change"


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_log_without_repository(self):
        """Log-only mode never raises."""
        audit = AuditLogger()
        await audit.log(AuditAction.LOGIN, "session", user_id="user-1")

    @pytest.mark.asyncio
    async def test_log_writes_entry(self, session):
        """Entries are written in the unit of work and readable right away."""
        audit = AuditLogger.for_session(session)
        await audit.log(
            AuditAction.LOGIN_FAILED,
            "session",
            organization_id="org-1",
            user_id="user-1",
            details={"reason": "invalid_password"},
            ip_address="10.0.0.1",
            user_agent="pytest",
        )

        entries = await AuditLogRepository(session).query(organization_id="org-1")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == "login_failed"
        assert entry.resource_type == "session"
        assert entry.details == {"reason": "invalid_password"}
        assert entry.ip_address == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_log_failure_is_swallowed(self):
        """A failing database write is logged and does not reach the caller."""
        repository = MagicMock()
        repository.write = AsyncMock(
            side_effect=OperationalError("INSERT INTO audit_logs", {}, Exception("disk full"))
        )
        audit = AuditLogger(repository)

        await audit.log(AuditAction.LOGOUT, "session", user_id="user-1")

        repository.write.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_insert_keeps_request_writes(
        self, database, token_service, email_service, password
    ):
        """A broken audit table costs only the audit rows; the login still commits."""
        async with database.session() as session:
            registration = await AuthService(
                session, token_service=token_service, email_service=email_service
            ).register(
                email="alice@acme.test",
                password=password,
                first_name="Alice",
                last_name="Admin",
                organization_name="Acme Trust",
                organization_slug="acme",
            )

        async with database.session() as session:
            await session.execute(text("DROP TABLE audit_logs"))

        async with database.session() as session:
            result = await AuthService(
                session, token_service=token_service, email_service=email_service
            ).login("alice@acme.test", password)

        assert result.organization["slug"] == "acme"

        async with database.session() as session:
            user = await UserRepository(session).get(registration.user["id"])
            assert user.last_login_at is not None
            assert user.refresh_token_hash == token_service.hash_token(result.tokens.refresh_token)

    @pytest.mark.asyncio
    async def test_query_by_user_matches_resource(self, session):
        """User filters match both the actor and the affected resource."""
        audit = AuditLogger.for_session(session)
        await audit.log(AuditAction.UPDATE, "user", user_id="admin-1", resource_id="user-2")
        await audit.log(AuditAction.LOGIN, "session", user_id="user-3")

        entries = await AuditLogRepository(session).query(user_id="user-2")
        assert [e.action for e in entries] == ["update"]

    @pytest.mark.asyncio
    async def test_query_by_action(self, session):
        audit = AuditLogger.for_session(session)
        await audit.log(AuditAction.LOGIN, "session", user_id="user-1")
        await audit.log(AuditAction.LOGOUT, "session", user_id="user-1")

        entries = await AuditLogRepository(session).query(action="logout")
        assert len(entries) == 1
