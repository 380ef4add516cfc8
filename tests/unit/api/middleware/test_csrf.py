"""
Tests for CSRF middleware.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import Response

from trustee_portal.api.middleware.csrf import csrf_middleware


def make_request(method="POST", cookies=None, headers=None):
    request = MagicMock()
    request.method = method
    request.url.path = "/api/invitations"
    request.cookies = cookies or {}
    request.headers = headers or {}
    return request


@pytest.fixture
def call_next():
    return AsyncMock(return_value=Response(status_code=200))


class TestCsrfMiddleware:
    """Tests for the double-submit CSRF check."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    async def test_safe_methods_pass(self, call_next, method):
        request = make_request(method=method, cookies={"access_token": "jwt"})
        response = await csrf_middleware(request, call_next)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_no_session_cookie_passes(self, call_next):
        """Unauthenticated requests such as login have nothing to protect."""
        response = await csrf_middleware(make_request(), call_next)
        assert response.status_code == 200
        call_next.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_matching_header(self, call_next):
        request = make_request(
            cookies={"access_token": "jwt", "csrf_token": "abc123"},
            headers={"X-CSRF-Token": "abc123"},
        )
        response = await csrf_middleware(request, call_next)
        assert response.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", [None, "", "wrong"])
    async def test_rejected(self, call_next, header):
        headers = {"X-CSRF-Token": header} if header is not None else {}
        request = make_request(
            method="DELETE",
            cookies={"access_token": "jwt", "csrf_token": "abc123"},
            headers=headers,
        )

        response = await csrf_middleware(request, call_next)

        assert response.status_code == 403
        body = json.loads(response.body)
        assert body["success"] is False
        assert body["error"]["code"] == "CSRF_INVALID"
        call_next.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_csrf_cookie(self, call_next):
        request = make_request(
            cookies={"access_token": "jwt"},
            headers={"X-CSRF-Token": "abc123"},
        )
        response = await csrf_middleware(request, call_next)
        assert response.status_code == 403
