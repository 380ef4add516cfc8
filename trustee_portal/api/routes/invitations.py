"""
Trustee Portal - Invitation API Routes
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from trustee_portal.api.middleware.rate_limit import RateLimiter
from trustee_portal.api.responses import success_response
from trustee_portal.auth.dependencies import (
    get_current_session,
    get_invitation_service,
    require_permission,
    wants_token_body,
)
from trustee_portal.auth.invitations import InvitationService
from trustee_portal.auth.models import CurrentSession, RequestMeta
from trustee_portal.auth.rbac import Permission
from trustee_portal.auth.tokens import set_auth_cookies


router = APIRouter()


class CreateInvitationRequest(BaseModel):
    """Invite someone into the current organization."""
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    role: str = Field(..., min_length=1, max_length=50)
    department: Optional[str] = Field(default=None, max_length=100)
    title: Optional[str] = Field(default=None, max_length=100)
    term_start_date: Optional[date] = Field(default=None, alias="termStartDate")
    term_length_years: Optional[int] = Field(default=None, alias="termLengthYears", ge=1, le=10)
    message: Optional[str] = Field(default=None, max_length=1000)


class AcceptInvitationRequest(BaseModel):
    """Accept an invitation; any role sent by the client is ignored."""
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., min_length=1)
    password: Optional[str] = Field(default=None, max_length=256)
    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=100)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=100)


@router.get("/validate/{token}")
async def validate_invitation(
    token: str,
    invitation_service: InvitationService = Depends(get_invitation_service),
):
    """Public preview of an invitation."""
    return success_response(await invitation_service.validate(token))


@router.post("/accept", dependencies=[Depends(RateLimiter())])
async def accept_invitation(
    body: AcceptInvitationRequest,
    request: Request,
    invitation_service: InvitationService = Depends(get_invitation_service),
):
    """Accept an invitation, creating the account if needed, and sign in."""
    result = await invitation_service.accept(
        body.token,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        meta=RequestMeta.from_request(request),
    )
    response = success_response(
        result.to_response(include_tokens=wants_token_body(request)),
        message="Invitation accepted",
    )
    set_auth_cookies(response, result.tokens)
    return response


@router.post("")
async def create_invitation(
    body: CreateInvitationRequest,
    request: Request,
    current: CurrentSession = Depends(require_permission(Permission.USER_INVITE)),
    invitation_service: InvitationService = Depends(get_invitation_service),
):
    """
    Invite a user to the current organization.

    A pending invitation for the same address is resent, and a deactivated
    member is reactivated instead of invited.
    """
    result = await invitation_service.create(
        current,
        email=body.email,
        role=body.role,
        department=body.department,
        title=body.title,
        term_start_date=body.term_start_date,
        term_length_years=body.term_length_years,
        message=body.message,
        meta=RequestMeta.from_request(request),
    )
    status_code = 201 if result["status"] == "created" else 200
    return success_response(result, status_code=status_code)


@router.get("")
async def list_invitations(
    current: CurrentSession = Depends(require_permission(Permission.USER_VIEW)),
    invitation_service: InvitationService = Depends(get_invitation_service),
):
    """Pending invitations of the current organization."""
    return success_response(await invitation_service.list_pending(current))


@router.get("/roles")
async def invitable_roles(
    current: CurrentSession = Depends(require_permission(Permission.USER_INVITE)),
    invitation_service: InvitationService = Depends(get_invitation_service),
):
    """Roles the caller may grant."""
    return success_response(invitation_service.invitable_roles(current))


@router.post("/{invitation_id}/resend")
async def resend_invitation(
    invitation_id: str,
    request: Request,
    current: CurrentSession = Depends(get_current_session),
    invitation_service: InvitationService = Depends(get_invitation_service),
):
    result = await invitation_service.resend(
        current, invitation_id, meta=RequestMeta.from_request(request)
    )
    return success_response(result, message="Invitation resent")


@router.delete("/{invitation_id}")
async def cancel_invitation(
    invitation_id: str,
    request: Request,
    current: CurrentSession = Depends(get_current_session),
    invitation_service: InvitationService = Depends(get_invitation_service),
):
    await invitation_service.cancel(
        current, invitation_id, meta=RequestMeta.from_request(request)
    )
    return success_response(message="Invitation cancelled")
