"""Tests for access, refresh and CSRF tokens."""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from fastapi.responses import JSONResponse
from jose import jwt

from trustee_portal.auth.tokens import (
    ACCESS_TOKEN_COOKIE,
    CSRF_HEADER,
    CSRF_TOKEN_COOKIE,
    REFRESH_COOKIE_PATH,
    REFRESH_TOKEN_COOKIE,
    TokenService,
    clear_auth_cookies,
    extract_access_token,
    extract_refresh_token,
    set_auth_cookies,
)
from trustee_portal.core.types import utcnow


@pytest.fixture
def user():
    return SimpleNamespace(id="user-1", email="alice@acme.test", is_super_admin=False)


class TestAccessTokens:
    """Tests for signed access tokens."""

    def test_issue_and_verify(self, token_service, user):
        """A freshly issued token verifies and carries the tenant claims."""
        token = token_service.issue_access_token(user, "org-1", "admin")
        claims = token_service.verify_access_token(token)

        assert claims is not None
        assert claims.sub == "user-1"
        assert claims.email == "alice@acme.test"
        assert claims.organization_id == "org-1"
        assert claims.role == "admin"
        assert claims.is_super_admin is False

    def test_tenantless_token(self, token_service, user):
        """Without an organization neither organizationId nor role is present."""
        token = token_service.issue_access_token(user, None, "admin")
        claims = token_service.verify_access_token(token)

        assert claims.organization_id is None
        assert claims.role is None

    def test_verify_none_or_empty(self, token_service):
        assert token_service.verify_access_token(None) is None
        assert token_service.verify_access_token("") is None

    def test_verify_garbage(self, token_service):
        assert token_service.verify_access_token("not.a.jwt") is None

    def test_verify_wrong_secret(self, token_service, user):
        """Tokens signed with another key are rejected."""
        other = TokenService(secret_key="another-secret-key-that-is-long-enough-000")
        token = other.issue_access_token(user)
        assert token_service.verify_access_token(token) is None

    def test_verify_expired(self, token_service, user):
        """Tokens past exp are rejected."""
        past = utcnow() - timedelta(days=2)
        with patch("trustee_portal.auth.tokens.utcnow", return_value=past):
            token = token_service.issue_access_token(user)
        assert token_service.verify_access_token(token) is None

    def test_verify_wrong_audience(self, token_service, user):
        """Audience and issuer are enforced."""
        now = utcnow()
        token = jwt.encode(
            {
                "sub": user.id,
                "email": user.email,
                "iat": now,
                "exp": now + timedelta(minutes=5),
                "iss": token_service.issuer,
                "aud": "someone-else",
            },
            token_service.secret_key,
            algorithm=token_service.algorithm,
        )
        assert token_service.verify_access_token(token) is None

    def test_read_expired_claims(self, token_service, user):
        """Expired but correctly signed tokens still yield their tenant."""
        past = utcnow() - timedelta(days=2)
        with patch("trustee_portal.auth.tokens.utcnow", return_value=past):
            token = token_service.issue_access_token(user, "org-1", "owner")

        claims = token_service.read_expired_claims(token)
        assert claims is not None
        assert claims.organization_id == "org-1"
        assert claims.role == "owner"

    def test_read_expired_claims_checks_signature(self, token_service, user):
        other = TokenService(secret_key="another-secret-key-that-is-long-enough-000")
        past = utcnow() - timedelta(days=2)
        with patch("trustee_portal.auth.tokens.utcnow", return_value=past):
            token = other.issue_access_token(user, "org-1", "owner")

        assert token_service.read_expired_claims(token) is None
        assert token_service.read_expired_claims(None) is None


class TestOpaqueTokens:
    """Tests for refresh and one-time tokens."""

    def test_refresh_token_entropy(self, token_service):
        """Refresh tokens carry at least 32 random bytes."""
        issued = token_service.issue_refresh_token()
        assert len(issued.token) >= 64
        assert issued.token_hash != issued.token
        assert issued.expires_at > utcnow()

    def test_refresh_tokens_are_unique(self, token_service):
        assert token_service.issue_refresh_token().token != token_service.issue_refresh_token().token

    def test_hash_is_deterministic(self, token_service):
        assert token_service.hash_token("abc") == token_service.hash_token("abc")

    def test_hash_is_keyed(self, token_service):
        """A different cookie secret yields a different hash."""
        other = TokenService(cookie_secret="another-cookie-secret-long-enough-0000000")
        assert token_service.hash_token("abc") != other.hash_token("abc")

    def test_verify_token_hash(self, token_service):
        token, token_hash = token_service.generate_opaque_token()
        assert token_service.verify_token_hash(token, token_hash) is True
        assert token_service.verify_token_hash("other", token_hash) is False
        assert token_service.verify_token_hash(token, None) is False

    def test_issue_token_pair(self, token_service, user):
        """Pairs hand back the refresh hash to persist, never the token itself."""
        pair, refresh_hash = token_service.issue_token_pair(user, "org-1", "trustee")

        assert refresh_hash == token_service.hash_token(pair.refresh_token)
        assert token_service.verify_access_token(pair.access_token).organization_id == "org-1"
        assert pair.csrf_token
        assert set(pair.as_body()) == {"accessToken", "refreshToken", "csrfToken"}


class TestCsrf:
    """Tests for double-submit CSRF tokens."""

    def test_matching_tokens(self, token_service):
        token = token_service.generate_csrf_token()
        assert TokenService.verify_csrf_token(token, token) is True

    def test_mismatch(self, token_service):
        assert TokenService.verify_csrf_token("a" * 64, "b" * 64) is False

    def test_missing_values(self):
        assert TokenService.verify_csrf_token(None, "x") is False
        assert TokenService.verify_csrf_token("x", None) is False
        assert TokenService.verify_csrf_token("", "") is False


class TestCookies:
    """Tests for cookie transport."""

    def test_set_auth_cookies(self, token_service, user):
        """Access and refresh cookies are httpOnly; the CSRF cookie is readable."""
        pair, _ = token_service.issue_token_pair(user)
        response = JSONResponse({})
        set_auth_cookies(response, pair)

        cookies = response.headers.getlist("set-cookie")
        access = next(c for c in cookies if c.startswith(f"{ACCESS_TOKEN_COOKIE}="))
        refresh = next(c for c in cookies if c.startswith(f"{REFRESH_TOKEN_COOKIE}="))
        csrf = next(c for c in cookies if c.startswith(f"{CSRF_TOKEN_COOKIE}="))

        assert "httponly" in access.lower()
        assert "httponly" in refresh.lower()
        assert f"Path={REFRESH_COOKIE_PATH}" in refresh
        assert "httponly" not in csrf.lower()
        assert response.headers[CSRF_HEADER] == pair.csrf_token

    def test_clear_auth_cookies(self):
        response = JSONResponse({})
        clear_auth_cookies(response)
        cookies = response.headers.getlist("set-cookie")
        assert len(cookies) == 3
        assert all("Max-Age=0" in c for c in cookies)

    def test_extract_tokens_from_cookies(self):
        """Tokens are read from cookies only."""
        request = MagicMock()
        request.cookies = {ACCESS_TOKEN_COOKIE: "access", REFRESH_TOKEN_COOKIE: "refresh"}
        request.headers = {"Authorization": "Bearer header-token"}

        assert extract_access_token(request) == "access"
        assert extract_refresh_token(request) == "refresh"

    def test_authorization_header_ignored(self):
        request = MagicMock()
        request.cookies = {}
        request.headers = {"Authorization": "Bearer header-token"}

        assert extract_access_token(request) is None
