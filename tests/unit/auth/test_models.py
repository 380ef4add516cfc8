"""Tests for auth payload models."""

from datetime import date, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

from trustee_portal.auth.models import (
    AuthResult,
    CurrentSession,
    OrganizationSummary,
    RequestMeta,
    client_ip,
    membership_payload,
    organization_payload,
    user_payload,
)
from trustee_portal.auth.rbac import Permission, Role
from trustee_portal.auth.tokens import TokenPair


def make_pair() -> TokenPair:
    return TokenPair(
        access_token="access",
        refresh_token="refresh",
        csrf_token="csrf",
        refresh_expires_at=datetime(2030, 1, 1),
    )


class TestClientIp:
    def test_forwarded_for_first_hop(self):
        request = MagicMock()
        request.headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
        assert client_ip(request) == "203.0.113.7"

    def test_socket_peer(self):
        request = MagicMock()
        request.headers = {}
        request.client.host = "127.0.0.1"
        assert client_ip(request) == "127.0.0.1"

    def test_no_client(self):
        request = MagicMock()
        request.headers = {}
        request.client = None
        assert client_ip(request) == "unknown"

    def test_request_meta(self):
        request = MagicMock()
        request.headers = {"User-Agent": "pytest", "X-Forwarded-For": "198.51.100.2"}
        meta = RequestMeta.from_request(request)
        assert meta.ip_address == "198.51.100.2"
        assert meta.user_agent == "pytest"


class TestCurrentSession:
    """Tests for CurrentSession."""

    def test_permissions_from_role(self):
        current = CurrentSession(user_id="u", email="e", member_id="m", role=Role.VIEWER)
        assert current.has_membership is True
        assert Permission.DOC_VIEW.value in current.permissions
        assert Permission.USER_VIEW.value not in current.permissions

    def test_no_role_no_permissions(self):
        current = CurrentSession(user_id="u", email="e")
        assert current.has_membership is False
        assert current.permissions == []

    def test_super_admin_has_all_permissions(self):
        current = CurrentSession(user_id="u", email="e", is_super_admin=True)
        assert len(current.permissions) == len(Permission)


class TestPayloads:
    """Tests for JSON payload builders."""

    def test_user_payload(self):
        user = SimpleNamespace(
            id="u1", email="a@b.c", first_name="Ada", last_name="Lovelace",
            is_super_admin=False, email_verified=True,
        )
        payload = user_payload(user, role="admin")
        assert payload["firstName"] == "Ada"
        assert payload["emailVerified"] is True
        assert payload["role"] == "admin"
        assert "passwordHash" not in payload

    def test_user_payload_without_role(self):
        user = SimpleNamespace(
            id="u1", email="a@b.c", first_name="Ada", last_name="Lovelace",
            is_super_admin=False, email_verified=False,
        )
        assert "role" not in user_payload(user)

    def test_organization_payload(self):
        organization = SimpleNamespace(
            id="o1", name="Acme", slug="acme", subscription_status="trial",
            trial_ends_at=datetime(2030, 1, 1, 12, 0),
        )
        payload = organization_payload(organization, role="owner")
        assert payload["subscriptionStatus"] == "trial"
        assert payload["trialEndsAt"] == "2030-01-01T12:00:00"
        assert payload["role"] == "owner"

    def test_membership_payload(self):
        member = SimpleNamespace(
            id="m1", role="trustee", department="Finance", title="Lead",
            is_active=True, joined_at=datetime(2026, 1, 1),
            term_start_date=date(2026, 1, 1), term_end_date=date(2029, 1, 1),
        )
        payload = membership_payload(member)
        assert payload["termEndDate"] == "2029-01-01"
        assert payload["isActive"] is True

    def test_organization_summary(self):
        member = SimpleNamespace(role="chair")
        organization = SimpleNamespace(id="o1", name="Acme", slug="acme", subscription_status="active")
        summary = OrganizationSummary.from_rows(member, organization)
        assert summary.model_dump(by_alias=True)["subscriptionStatus"] == "active"
        assert summary.role == "chair"


class TestAuthResult:
    """Tests for AuthResult.to_response."""

    def test_tokens_hidden_by_default(self):
        result = AuthResult(user={"id": "u1"}, tokens=make_pair())
        data = result.to_response()
        assert "tokens" not in data
        assert "organization" not in data

    def test_tokens_for_api_clients(self):
        result = AuthResult(user={"id": "u1"}, tokens=make_pair())
        data = result.to_response(include_tokens=True)
        assert data["tokens"]["accessToken"] == "access"
        assert data["tokens"]["refreshToken"] == "refresh"

    def test_organization_selection(self):
        result = AuthResult(
            user={"id": "u1"},
            organizations=[
                OrganizationSummary(id="o1", name="A", slug="a", role="owner", subscription_status="trial"),
                OrganizationSummary(id="o2", name="B", slug="b", role="viewer", subscription_status="active"),
            ],
            requires_organization_selection=True,
            tokens=make_pair(),
        )
        data = result.to_response()
        assert data["requiresOrganizationSelection"] is True
        assert [o["id"] for o in data["organizations"]] == ["o1", "o2"]
