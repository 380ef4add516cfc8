"""
Trustee Portal - Organization Membership API Routes
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from trustee_portal.api.responses import success_response
from trustee_portal.auth.dependencies import get_membership_service, require_permission
from trustee_portal.auth.members import MembershipService
from trustee_portal.auth.models import CurrentSession, RequestMeta
from trustee_portal.auth.rbac import Permission


router = APIRouter()


class UpdateMemberRequest(BaseModel):
    role: Optional[str] = Field(default=None, max_length=50)
    department: Optional[str] = Field(default=None, max_length=100)
    title: Optional[str] = Field(default=None, max_length=100)


@router.get("/current/members")
async def list_members(
    include_inactive: bool = Query(default=False, alias="includeInactive"),
    current: CurrentSession = Depends(require_permission(Permission.USER_VIEW)),
    membership_service: MembershipService = Depends(get_membership_service),
):
    """Members of the current organization."""
    members = await membership_service.list_members(current, include_inactive=include_inactive)
    return success_response(members)


@router.patch("/current/members/{member_id}")
async def update_member(
    member_id: str,
    body: UpdateMemberRequest,
    request: Request,
    current: CurrentSession = Depends(require_permission(Permission.ROLE_ASSIGN)),
    membership_service: MembershipService = Depends(get_membership_service),
):
    """Change a member's role, department or title."""
    member = await membership_service.update_member(
        current,
        member_id,
        role=body.role,
        department=body.department,
        title=body.title,
        meta=RequestMeta.from_request(request),
    )
    return success_response(member)


@router.delete("/current/members/{member_id}")
async def remove_member(
    member_id: str,
    request: Request,
    current: CurrentSession = Depends(require_permission(Permission.USER_DELETE)),
    membership_service: MembershipService = Depends(get_membership_service),
):
    """Deactivate a membership."""
    await membership_service.remove_member(
        current, member_id, meta=RequestMeta.from_request(request)
    )
    return success_response(message="Member removed")
