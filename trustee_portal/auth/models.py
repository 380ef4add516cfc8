"""
Trustee Portal - Auth Models
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field

from trustee_portal.auth.rbac import Permission, Role, get_rbac_manager
from trustee_portal.auth.tokens import TokenPair


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestMeta(BaseModel):
    """Caller metadata recorded on audit entries."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestMeta":
        return cls(
            ip_address=client_ip(request),
            user_agent=request.headers.get("User-Agent"),
        )


class CurrentSession(BaseModel):
    """
    Identity resolved for one request.

    ``role`` comes from the live active membership, never from the token
    claim; it is None when the token carries no tenant or the membership is
    gone, in which case only the super-admin bypass can authorize anything.
    """
    model_config = ConfigDict(use_enum_values=False)

    user_id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    is_super_admin: bool = False
    email_verified: bool = False
    organization_id: Optional[str] = None
    member_id: Optional[str] = None
    role: Optional[Role] = None

    @property
    def has_membership(self) -> bool:
        return self.member_id is not None and self.role is not None

    @property
    def permissions(self) -> list[str]:
        if self.is_super_admin:
            return sorted(p.value for p in Permission)
        if self.role is None:
            return []
        return sorted(p.value for p in get_rbac_manager().get_role_permissions(self.role))


def isoformat(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def user_payload(user: Any, role: Optional[str] = None) -> dict[str, Any]:
    """Public view of a user row."""
    data: dict[str, Any] = {
        "id": user.id,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "isSuperAdmin": bool(user.is_super_admin),
        "emailVerified": bool(user.email_verified),
    }
    if role is not None:
        data["role"] = role
    return data


def organization_payload(organization: Any, role: Optional[str] = None) -> dict[str, Any]:
    """Public view of an organization, optionally with the caller's role in it."""
    data: dict[str, Any] = {
        "id": organization.id,
        "name": organization.name,
        "slug": organization.slug,
        "subscriptionStatus": organization.subscription_status,
        "trialEndsAt": isoformat(organization.trial_ends_at),
    }
    if role is not None:
        data["role"] = role
    return data


def membership_payload(member: Any) -> dict[str, Any]:
    return {
        "id": member.id,
        "role": member.role,
        "department": member.department,
        "title": member.title,
        "isActive": member.is_active,
        "joinedAt": isoformat(member.joined_at),
        "termStartDate": isoformat(member.term_start_date),
        "termEndDate": isoformat(member.term_end_date),
    }


class OrganizationSummary(BaseModel):
    """An organization as seen by one of its members."""
    id: str
    name: str
    slug: str
    role: str
    subscription_status: str = Field(serialization_alias="subscriptionStatus")

    @classmethod
    def from_rows(cls, member: Any, organization: Any) -> "OrganizationSummary":
        return cls(
            id=organization.id,
            name=organization.name,
            slug=organization.slug,
            role=member.role,
            subscription_status=organization.subscription_status,
        )


class AuthResult(BaseModel):
    """Outcome of login, selection, refresh, registration or invitation accept."""
    user: dict[str, Any]
    organization: Optional[dict[str, Any]] = None
    organizations: list[OrganizationSummary] = Field(default_factory=list)
    requires_organization_selection: bool = False
    requires_email_verification: bool = False
    tokens: TokenPair

    def to_response(self, include_tokens: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"user": self.user}
        if self.organization is not None:
            data["organization"] = self.organization
        if self.organizations:
            data["organizations"] = [o.model_dump(by_alias=True) for o in self.organizations]
        if self.requires_organization_selection:
            data["requiresOrganizationSelection"] = True
        if self.requires_email_verification:
            data["requiresEmailVerification"] = True
        if include_tokens:
            data["tokens"] = self.tokens.as_body()
        return data
