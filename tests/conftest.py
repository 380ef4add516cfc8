"""
Trustee Portal - Test Configuration and Fixtures
"""
from __future__ import annotations

from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio

from trustee_portal.auth.models import CurrentSession
from trustee_portal.auth.password import hash_password
from trustee_portal.auth.rbac import Role
from trustee_portal.auth.service import AuthService
from trustee_portal.auth.tokens import TokenService
from trustee_portal.core.config import settings
from trustee_portal.core.tasks import drain_background_tasks
from trustee_portal.notifications.email import EmailService
from trustee_portal.storage.counters import InMemoryCounterStore
from trustee_portal.storage.database import Database
from trustee_portal.storage.repository import MemberRepository, UserRepository

STRONG_PASSWORD = "Str0ng!Passw0rd"


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """Fresh in-memory SQLite database with all tables."""
    db = Database(url="sqlite+aiosqlite://")
    await db.connect()
    await db.create_tables()
    yield db
    await drain_background_tasks()
    await db.disconnect()


@pytest_asyncio.fixture
async def session(database):
    """One unit of work against the test database."""
    async with database.session() as session:
        yield session


@pytest.fixture
def password() -> str:
    return STRONG_PASSWORD


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def token_service() -> TokenService:
    return TokenService()


@pytest.fixture
def email_service() -> AsyncMock:
    """Email service double; every send reports success."""
    service = AsyncMock(spec=EmailService)
    return service


@pytest.fixture
def auth_service(session, token_service, email_service) -> AuthService:
    return AuthService(session, token_service=token_service, email_service=email_service)


# =============================================================================
# Data Factories
# =============================================================================

@pytest.fixture
def make_user(session):
    """Create a user directly through the repository."""
    async def _make_user(
        email: Optional[str] = None,
        password: str = STRONG_PASSWORD,
        first_name: str = "Test",
        last_name: str = "User",
        **fields,
    ):
        return await UserRepository(session).create(
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            **fields,
        )

    return _make_user


@pytest.fixture
def add_member(session):
    """Attach a user to an organization with a role."""
    async def _add_member(organization_id: str, user_id: str, role: Role = Role.TRUSTEE, **fields):
        return await MemberRepository(session).create(
            organization_id=organization_id,
            user_id=user_id,
            role=role.value,
            **fields,
        )

    return _add_member


@pytest.fixture
def registered(auth_service):
    """Register an owner with a new organization."""
    async def _register(slug: Optional[str] = None, email: Optional[str] = None):
        slug = slug or f"org-{uuid4().hex[:8]}"
        return await auth_service.register(
            email=email or f"owner@{slug}.example.com",
            password=STRONG_PASSWORD,
            first_name="Olivia",
            last_name="Owner",
            organization_name=f"{slug.title()} Trust",
            organization_slug=slug,
        )

    return _register


@pytest.fixture
def current_for():
    """Build the CurrentSession for the user and organization of an AuthResult."""
    def _current_for(result, role: Optional[Role] = None, member_id: Optional[str] = "member") -> CurrentSession:
        organization = result.organization or {}
        return CurrentSession(
            user_id=result.user["id"],
            email=result.user["email"],
            first_name=result.user["firstName"],
            last_name=result.user["lastName"],
            is_super_admin=result.user["isSuperAdmin"],
            organization_id=organization.get("id"),
            member_id=member_id,
            role=role or (Role(organization["role"]) if organization.get("role") else None),
        )

    return _current_for


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def no_rate_limit(monkeypatch):
    """Disable rate limiting for flow tests."""
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)


# =============================================================================
# API Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def app(database):
    """Application wired to the test database and a private counter store."""
    from trustee_portal.api.middleware.rate_limit import set_counter_store
    from trustee_portal.app import create_app
    from trustee_portal.storage.database import get_session

    application = create_app()

    async def override_get_session():
        async with database.session() as session:
            yield session

    application.dependency_overrides[get_session] = override_get_session
    set_counter_store(InMemoryCounterStore())
    yield application
    set_counter_store(None)


@pytest_asyncio.fixture
async def async_test_client(app):
    """Create an async test client."""
    from httpx import AsyncClient, ASGITransport

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver"
    ) as client:
        yield client


@pytest.fixture
def client_factory(app):
    """Independent async clients, one cookie jar per simulated browser."""
    from httpx import AsyncClient, ASGITransport

    def _client(**kwargs) -> AsyncClient:
        return AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
            **kwargs,
        )

    return _client
