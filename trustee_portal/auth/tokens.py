"""
Trustee Portal - Token Service

Signed access tokens, opaque refresh tokens stored only as keyed hashes,
double-submit CSRF tokens, and the cookies that carry them.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Request, Response
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict, Field

from trustee_portal.core.config import get_settings
from trustee_portal.core.logging import get_logger
from trustee_portal.core.types import utcnow

logger = get_logger(__name__)

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"
CSRF_TOKEN_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"
REFRESH_COOKIE_PATH = "/api/auth"


class AccessTokenClaims(BaseModel):
    """Verified access token payload."""
    model_config = ConfigDict(populate_by_name=True)

    sub: str  # User ID
    email: str
    is_super_admin: bool = Field(default=False, alias="isSuperAdmin")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    role: Optional[str] = None
    exp: int
    iat: int


class IssuedRefreshToken(BaseModel):
    """A fresh refresh token; only ``token_hash`` is ever persisted."""
    token: str
    token_hash: str
    expires_at: datetime


class TokenPair(BaseModel):
    """Everything a client needs after login, selection, refresh or accept."""
    access_token: str
    refresh_token: str
    csrf_token: str
    refresh_expires_at: datetime

    def as_body(self) -> dict[str, str]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "csrfToken": self.csrf_token,
        }


class TokenService:
    """Issues and verifies the portal's tokens."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        cookie_secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        access_token_expire_minutes: Optional[int] = None,
        refresh_token_expire_days: Optional[int] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.JWT_SECRET_KEY
        self.cookie_secret = (cookie_secret or settings.COOKIE_SECRET).encode()
        self.algorithm = algorithm or settings.JWT_ALGORITHM
        self.issuer = settings.JWT_ISSUER
        self.audience = settings.JWT_AUDIENCE
        self.access_token_expire_minutes = (
            access_token_expire_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        self.refresh_token_expire_days = (
            refresh_token_expire_days or settings.REFRESH_TOKEN_EXPIRE_DAYS
        )
        self.refresh_token_bytes = settings.REFRESH_TOKEN_BYTES
        self.csrf_token_bytes = settings.CSRF_TOKEN_BYTES

    # -------------------------------------------------------------------------
    # Access tokens
    # -------------------------------------------------------------------------

    def issue_access_token(
        self,
        user: Any,
        organization_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> str:
        """Create a signed access token for a user, optionally scoped to a tenant."""
        now = utcnow()
        payload: dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "isSuperAdmin": bool(user.is_super_admin),
            "iat": now,
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iss": self.issuer,
            "aud": self.audience,
        }
        if organization_id:
            payload["organizationId"] = organization_id
            if role:
                payload["role"] = role

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_access_token(self, token: Optional[str]) -> Optional[AccessTokenClaims]:
        """Signature, expiry, issuer and audience check. Never touches storage."""
        return self._decode_access_token(token, verify_exp=True)

    def read_expired_claims(self, token: Optional[str]) -> Optional[AccessTokenClaims]:
        """
        Claims of a correctly signed access token, expired or not.

        Only for carrying the tenant across a refresh; never authorizes a
        request on its own.
        """
        return self._decode_access_token(token, verify_exp=False)

    def _decode_access_token(
        self, token: Optional[str], verify_exp: bool
    ) -> Optional[AccessTokenClaims]:
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": verify_exp},
            )
            return AccessTokenClaims.model_validate(payload)
        except (JWTError, ValueError) as e:
            logger.debug("Access token rejected", error=str(e))
            return None

    # -------------------------------------------------------------------------
    # Opaque tokens (refresh, reset, verification, invitation)
    # -------------------------------------------------------------------------

    def hash_token(self, token: str) -> str:
        """Keyed SHA-256 so a leaked table cannot be replayed without the secret."""
        return hmac.new(self.cookie_secret, token.encode(), hashlib.sha256).hexdigest()

    def verify_token_hash(self, token: str, token_hash: Optional[str]) -> bool:
        if not token or not token_hash:
            return False
        return hmac.compare_digest(self.hash_token(token), token_hash)

    def generate_opaque_token(self, num_bytes: int = 32) -> tuple[str, str]:
        """Random token and its hash."""
        token = secrets.token_hex(num_bytes)
        return token, self.hash_token(token)

    def issue_refresh_token(self) -> IssuedRefreshToken:
        token, token_hash = self.generate_opaque_token(self.refresh_token_bytes)
        return IssuedRefreshToken(
            token=token,
            token_hash=token_hash,
            expires_at=utcnow() + timedelta(days=self.refresh_token_expire_days),
        )

    # -------------------------------------------------------------------------
    # CSRF
    # -------------------------------------------------------------------------

    def generate_csrf_token(self) -> str:
        return secrets.token_hex(self.csrf_token_bytes)

    @staticmethod
    def verify_csrf_token(cookie_token: Optional[str], header_token: Optional[str]) -> bool:
        if not cookie_token or not header_token:
            return False
        return hmac.compare_digest(cookie_token, header_token)

    # -------------------------------------------------------------------------
    # Pairs
    # -------------------------------------------------------------------------

    def issue_token_pair(
        self,
        user: Any,
        organization_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> tuple[TokenPair, str]:
        """New access/refresh/CSRF triple plus the refresh hash to persist."""
        refresh = self.issue_refresh_token()
        pair = TokenPair(
            access_token=self.issue_access_token(user, organization_id, role),
            refresh_token=refresh.token,
            csrf_token=self.generate_csrf_token(),
            refresh_expires_at=refresh.expires_at,
        )
        return pair, refresh.token_hash


# =============================================================================
# Cookie transport
# =============================================================================

def set_auth_cookies(response: Response, tokens: TokenPair) -> None:
    """Attach the token triple as cookies; only the CSRF cookie is script-readable."""
    settings = get_settings()
    common = {
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "domain": settings.COOKIE_DOMAIN,
    }
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        path="/",
        **common,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        httponly=True,
        path=REFRESH_COOKIE_PATH,
        **common,
    )
    response.set_cookie(
        CSRF_TOKEN_COOKIE,
        tokens.csrf_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=False,
        path="/",
        **common,
    )
    response.headers[CSRF_HEADER] = tokens.csrf_token


def clear_auth_cookies(response: Response) -> None:
    settings = get_settings()
    response.delete_cookie(ACCESS_TOKEN_COOKIE, path="/", domain=settings.COOKIE_DOMAIN)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, path=REFRESH_COOKIE_PATH, domain=settings.COOKIE_DOMAIN)
    response.delete_cookie(CSRF_TOKEN_COOKIE, path="/", domain=settings.COOKIE_DOMAIN)


def extract_access_token(request: Request) -> Optional[str]:
    """Access tokens are only ever read from the httpOnly cookie."""
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


def extract_refresh_token(request: Request) -> Optional[str]:
    return request.cookies.get(REFRESH_TOKEN_COOKIE)


# Module-level singleton
_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """Get the token service singleton."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
    return _token_service
