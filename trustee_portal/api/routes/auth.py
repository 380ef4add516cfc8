"""
Trustee Portal - Authentication API Routes
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from trustee_portal.api.middleware.rate_limit import RateLimiter
from trustee_portal.api.responses import success_response
from trustee_portal.auth.dependencies import (
    get_auth_service,
    get_current_session,
    get_optional_session,
    wants_token_body,
)
from trustee_portal.auth.models import AuthResult, CurrentSession, RequestMeta
from trustee_portal.auth.service import AuthService
from trustee_portal.auth.tokens import (
    clear_auth_cookies,
    extract_access_token,
    extract_refresh_token,
    get_token_service,
    set_auth_cookies,
)


router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(CamelModel):
    """Register a user and their organization."""
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    organization_name: str = Field(..., alias="organizationName", min_length=2, max_length=255)
    organization_slug: str = Field(..., alias="organizationSlug", min_length=3, max_length=100)


class LoginRequest(CamelModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=256)
    organization_id: Optional[str] = Field(default=None, alias="organizationId")


class SelectOrganizationRequest(CamelModel):
    organization_id: str = Field(..., alias="organizationId")


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")


class ForgotPasswordRequest(CamelModel):
    email: str = Field(..., min_length=1, max_length=255)


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, max_length=256)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=1, max_length=256)


class VerifyEmailRequest(CamelModel):
    token: str = Field(..., min_length=1)


def auth_response(request: Request, result: AuthResult, status_code: int = 200):
    """Tokens go in cookies; API clients also get them in the body."""
    response = success_response(
        result.to_response(include_tokens=wants_token_body(request)),
        status_code=status_code,
    )
    set_auth_cookies(response, result.tokens)
    return response


@router.post("/register")
async def register(
    body: RegisterRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Register a new organization with its owner account."""
    result = await auth_service.register(
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        organization_name=body.organization_name,
        organization_slug=body.organization_slug,
        meta=RequestMeta.from_request(request),
    )
    return auth_response(request, result, status_code=201)


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Log in with email and password."""
    result = await auth_service.login(
        email=body.email,
        password=body.password,
        organization_id=body.organization_id,
        meta=RequestMeta.from_request(request),
    )
    return auth_response(request, result)


@router.post("/select-organization")
async def select_organization(
    body: SelectOrganizationRequest,
    request: Request,
    current: CurrentSession = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Switch the session to another organization."""
    result = await auth_service.select_organization(
        current.user_id,
        body.organization_id,
        meta=RequestMeta.from_request(request),
    )
    return auth_response(request, result)


@router.post("/refresh")
async def refresh(
    request: Request,
    body: Optional[RefreshRequest] = None,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Exchange the refresh token for a new token pair."""
    token = extract_refresh_token(request)
    if token is None and body is not None and wants_token_body(request):
        token = body.refresh_token

    organization_id = body.organization_id if body is not None else None
    if organization_id is None:
        # Refresh usually follows expiry; stay in the tenant the session was in
        claims = get_token_service().read_expired_claims(extract_access_token(request))
        if claims is not None:
            organization_id = claims.organization_id

    result = await auth_service.refresh(
        token,
        organization_id=organization_id,
        meta=RequestMeta.from_request(request),
    )
    return auth_response(request, result)


@router.post("/logout")
async def logout(
    request: Request,
    current: Optional[CurrentSession] = Depends(get_optional_session),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Log out and revoke the stored refresh token."""
    if current is not None:
        await auth_service.logout(
            current.user_id,
            current.organization_id,
            meta=RequestMeta.from_request(request),
        )
    response = success_response(message="Logged out successfully")
    clear_auth_cookies(response)
    return response


@router.get("/me")
async def me(
    current: CurrentSession = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Current user, organization, role and permissions."""
    return success_response(await auth_service.get_me(current))


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Request a password reset email."""
    await auth_service.request_password_reset(body.email, meta=RequestMeta.from_request(request))
    return success_response(
        message="If an account exists, a password reset email has been sent"
    )


@router.post("/reset-password", dependencies=[Depends(RateLimiter())])
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Set a new password using a reset token."""
    await auth_service.reset_password(
        body.token,
        body.password,
        meta=RequestMeta.from_request(request),
    )
    return success_response(message="Password has been reset successfully. Please log in again.")


@router.post("/change-password", dependencies=[Depends(RateLimiter())])
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current: CurrentSession = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Change the password of the signed-in user; other sessions are signed out."""
    await auth_service.change_password(
        current.user_id,
        body.current_password,
        body.new_password,
        meta=RequestMeta.from_request(request),
    )
    response = success_response(message="Password changed successfully. Please log in again.")
    clear_auth_cookies(response)
    return response


@router.post("/verify-email")
async def verify_email(
    body: VerifyEmailRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Confirm an email address."""
    await auth_service.verify_email(body.token, meta=RequestMeta.from_request(request))
    return success_response(message="Email verified successfully")
