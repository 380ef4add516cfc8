"""
Trustee Portal - CSRF Middleware

Double-submit check: state-changing requests that carry an access-token
cookie must echo the CSRF cookie in the X-CSRF-Token header.
"""

from __future__ import annotations

from fastapi import Request, Response

from trustee_portal.api.middleware.error_handler import portal_exception_response
from trustee_portal.auth.tokens import (
    CSRF_HEADER,
    CSRF_TOKEN_COOKIE,
    TokenService,
    extract_access_token,
)
from trustee_portal.core.exceptions import CsrfError
from trustee_portal.core.logging import get_logger

logger = get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


async def csrf_middleware(request: Request, call_next) -> Response:
    """Reject state-changing cookie-authenticated requests without a matching CSRF header."""
    if request.method in SAFE_METHODS or not extract_access_token(request):
        return await call_next(request)

    if not TokenService.verify_csrf_token(
        request.cookies.get(CSRF_TOKEN_COOKIE),
        request.headers.get(CSRF_HEADER),
    ):
        logger.warning("CSRF check failed", method=request.method, path=request.url.path)
        return portal_exception_response(CsrfError())

    return await call_next(request)
