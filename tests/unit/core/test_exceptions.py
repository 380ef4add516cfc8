"""
Tests for trustee_portal/core/exceptions.py
"""

import pytest


class TestPortalException:
    """Tests for the base PortalException."""

    def test_portal_exception_creation(self):
        from trustee_portal.core.exceptions import PortalException

        exc = PortalException("Test error")
        assert str(exc) == "Test error"
        assert exc.code == "PORTAL_ERROR"
        assert exc.details == {}
        assert exc.status_code == 400

    def test_portal_exception_can_be_raised(self):
        from trustee_portal.core.exceptions import PortalException

        with pytest.raises(PortalException) as exc_info:
            raise PortalException("Test error message", code="X", details={"a": 1})

        assert exc_info.value.details == {"a": 1}


class TestSpecificExceptions:
    """Status codes and error codes of the domain errors."""

    @pytest.mark.parametrize(
        "build,status,code",
        [
            (lambda e: e.InvalidCredentialsError(), 401, "INVALID_CREDENTIALS"),
            (lambda e: e.InvalidTokenError(), 401, "INVALID_TOKEN"),
            (lambda e: e.AccountLockedError('locked', 5), 423, "ACCOUNT_LOCKED"),
            (lambda e: e.AccountDeactivatedError(), 403, "ACCOUNT_DEACTIVATED"),
            (lambda e: e.NotOrgMemberError(), 403, "NOT_ORG_MEMBER"),
            (lambda e: e.OrgMembershipRequiredError(), 403, "ORG_MEMBERSHIP_REQUIRED"),
            (lambda e: e.OrgSuspendedError(), 403, "ORG_SUSPENDED"),
            (lambda e: e.TrialExpiredError(), 403, "TRIAL_EXPIRED"),
            (lambda e: e.MemberLimitReachedError(5), 403, "MEMBER_LIMIT_REACHED"),
            (lambda e: e.CsrfError(), 403, "CSRF_INVALID"),
            (lambda e: e.EmailExistsError(), 409, "EMAIL_EXISTS"),
            (lambda e: e.SlugExistsError(), 409, "SLUG_EXISTS"),
            (lambda e: e.AlreadyMemberError(), 409, "ALREADY_MEMBER"),
            (lambda e: e.WeakPasswordError(['short']), 400, "WEAK_PASSWORD"),
            (lambda e: e.InvalidInvitationError(), 400, "INVALID_INVITATION"),
            (lambda e: e.RateLimitedError(30), 429, "RATE_LIMITED"),
            (lambda e: e.NotFoundError('missing'), 404, "NOT_FOUND"),
        ],
    )
    def test_status_and_code(self, build, status, code):
        from trustee_portal.core import exceptions

        exc = build(exceptions)
        assert exc.status_code == status
        assert exc.code == code
        assert isinstance(exc, exceptions.PortalException)

    def test_locked_details(self):
        from trustee_portal.core.exceptions import AccountLockedError

        assert AccountLockedError("locked", minutes_remaining=12).details == {"minutesRemaining": 12}
        assert AccountLockedError("locked").details == {}

    def test_weak_password_details(self):
        from trustee_portal.core.exceptions import ValidationError, WeakPasswordError

        exc = WeakPasswordError(["too short", "needs a digit"])
        assert isinstance(exc, ValidationError)
        assert exc.details == {"errors": ["too short", "needs a digit"]}

    def test_validation_error_field(self):
        from trustee_portal.core.exceptions import ValidationError

        assert ValidationError("bad", field="email").details == {"field": "email"}
        assert ValidationError("bad").details == {}

    def test_rate_limited_retry_after(self):
        from trustee_portal.core.exceptions import RateLimitedError

        assert RateLimitedError(42).retry_after == 42
