"""
Trustee Portal - Custom Exceptions
"""

from typing import Any, Optional


class PortalException(Exception):
    """Base exception for all portal errors."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: str = "PORTAL_ERROR",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


# =============================================================================
# Authentication Exceptions (401)
# =============================================================================

class AuthenticationError(PortalException):
    """Raised when the caller is not authenticated."""

    status_code = 401

    def __init__(self, message: str = "Authentication required", code: str = "UNAUTHORIZED"):
        super().__init__(message, code=code)


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password; deliberately indistinguishable."""

    def __init__(self):
        super().__init__("Invalid email or password", code="INVALID_CREDENTIALS")


class InvalidTokenError(AuthenticationError):
    """Raised for missing, malformed, expired or revoked tokens."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message, code="INVALID_TOKEN")


# =============================================================================
# Account State Exceptions
# =============================================================================

class AccountLockedError(PortalException):
    """Raised while an account is locked after repeated failures."""

    status_code = 423

    def __init__(self, message: str, minutes_remaining: Optional[int] = None):
        super().__init__(
            message,
            code="ACCOUNT_LOCKED",
            details={"minutesRemaining": minutes_remaining} if minutes_remaining else None,
        )


class AccountDeactivatedError(PortalException):
    """Raised when a deactivated account tries to authenticate."""

    status_code = 403

    def __init__(self):
        super().__init__("Account has been deactivated", code="ACCOUNT_DEACTIVATED")


# =============================================================================
# Authorization Exceptions (403)
# =============================================================================

class AuthorizationError(PortalException):
    """Raised when an authenticated caller is not allowed to act."""

    status_code = 403

    def __init__(self, message: str, code: str = "FORBIDDEN", details: Optional[dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class InsufficientPermissionsError(AuthorizationError):
    def __init__(self, permissions: list[str]):
        super().__init__(
            f"Required permissions: {', '.join(permissions)}",
            code="INSUFFICIENT_PERMISSIONS",
            details={"required": permissions},
        )


class InsufficientRoleError(AuthorizationError):
    def __init__(self, message: str = "Insufficient role for this action"):
        super().__init__(message, code="INSUFFICIENT_ROLE")


class NotOrgMemberError(AuthorizationError):
    def __init__(self, message: str = "You are not a member of this organization"):
        super().__init__(message, code="NOT_ORG_MEMBER")


class OrgMembershipRequiredError(AuthorizationError):
    def __init__(self):
        super().__init__("Organization membership required", code="ORG_MEMBERSHIP_REQUIRED")


class OrgSuspendedError(AuthorizationError):
    def __init__(self):
        super().__init__(
            "Organization account is suspended. Please contact support.",
            code="ORG_SUSPENDED",
        )


class TrialExpiredError(AuthorizationError):
    def __init__(self):
        super().__init__(
            "Your trial has expired. Please upgrade to continue.",
            code="TRIAL_EXPIRED",
        )


class MemberLimitReachedError(AuthorizationError):
    def __init__(self, limit: int):
        super().__init__(
            "Organization has reached the maximum member limit",
            code="MEMBER_LIMIT_REACHED",
            details={"maxMembers": limit},
        )


class CsrfError(AuthorizationError):
    def __init__(self):
        super().__init__("Invalid CSRF token", code="CSRF_INVALID")


# =============================================================================
# Conflict Exceptions (409)
# =============================================================================

class ConflictError(PortalException):
    """Raised when a uniqueness constraint would be violated."""

    status_code = 409


class EmailExistsError(ConflictError):
    def __init__(self):
        super().__init__("An account with this email already exists", code="EMAIL_EXISTS")


class SlugExistsError(ConflictError):
    def __init__(self):
        super().__init__("This organization URL is already taken", code="SLUG_EXISTS")


class AlreadyMemberError(ConflictError):
    def __init__(self):
        super().__init__(
            "This user is already a member of the organization",
            code="ALREADY_MEMBER",
        )


# =============================================================================
# Not Found Exceptions (404)
# =============================================================================

class NotFoundError(PortalException):
    """Raised when a referenced record does not exist."""

    status_code = 404

    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(message, code=code)


# =============================================================================
# Validation Exceptions (400)
# =============================================================================

class ValidationError(PortalException):
    """Raised when validation fails."""

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", field: Optional[str] = None):
        super().__init__(
            message=message,
            code=code,
            details={"field": field} if field else {},
        )


class WeakPasswordError(ValidationError):
    def __init__(self, errors: list[str]):
        super().__init__("Password does not meet requirements", code="WEAK_PASSWORD")
        self.details = {"errors": errors}


class InvalidInvitationError(ValidationError):
    def __init__(self, message: str = "Invalid or expired invitation"):
        super().__init__(message, code="INVALID_INVITATION")


# =============================================================================
# Rate Limiting (429)
# =============================================================================

class RateLimitedError(PortalException):
    status_code = 429

    def __init__(self, retry_after: int, message: str = "Too many requests, please try again later"):
        super().__init__(message, code="RATE_LIMITED")
        self.retry_after = retry_after


# =============================================================================
# Infrastructure Exceptions
# =============================================================================

class DatabaseError(PortalException):
    """Database-related errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, code="DATABASE_ERROR")


class CacheError(PortalException):
    """Cache-related errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, code="CACHE_ERROR")


class ConfigurationError(PortalException):
    """Raised when configuration is invalid."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, code="CONFIGURATION_ERROR")
