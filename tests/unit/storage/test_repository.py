"""
Tests for trustee_portal/storage/repository.py

The conditional updates are what keep concurrent requests honest, so these
focus on their row-count semantics.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from trustee_portal.core.types import utcnow
from trustee_portal.storage.repository import (
    InvitationRepository,
    MemberRepository,
    OrganizationRepository,
    UserRepository,
)


@pytest.fixture
def make_organization(session):
    async def _make_organization(**fields):
        slug = fields.pop("slug", None) or f"org-{uuid4().hex[:8]}"
        return await OrganizationRepository(session).create(name=slug.title(), slug=slug, **fields)

    return _make_organization


@pytest.fixture
def make_invitation(session, make_user, make_organization):
    async def _make_invitation(**fields):
        inviter = await make_user()
        organization = await make_organization()
        values = {
            "organization_id": organization.id,
            "email": "Invitee@Example.com",
            "role": "trustee",
            "token_hash": uuid4().hex,
            "expires_at": utcnow() + timedelta(days=7),
            "invited_by": inviter.id,
        }
        values.update(fields)
        return await InvitationRepository(session).create(**values)

    return _make_invitation


class TestUserRepository:
    """Tests for UserRepository."""

    @pytest.mark.asyncio
    async def test_email_is_case_insensitive(self, session, make_user):
        user = await make_user(email="  Mixed@Case.COM ")
        assert user.email == "mixed@case.com"
        assert (await UserRepository(session).get_by_email("MIXED@case.com")).id == user.id

    @pytest.mark.asyncio
    async def test_increment_failed_attempts(self, session, make_user):
        users = UserRepository(session)
        user = await make_user()

        assert await users.increment_failed_attempts(user.id) == 1
        assert await users.increment_failed_attempts(user.id) == 2

    @pytest.mark.asyncio
    async def test_record_successful_login_clears_lock(self, session, make_user):
        users = UserRepository(session)
        user = await make_user()
        await users.increment_failed_attempts(user.id)
        await users.lock(user.id, utcnow() + timedelta(minutes=30))

        await users.record_successful_login(user.id)

        user = await users.get(user.id)
        assert user.failed_login_attempts == 0
        assert user.locked_until is None
        assert user.last_login_at is not None

    @pytest.mark.asyncio
    async def test_rotate_refresh_token_once(self, session, make_user):
        """Only the caller presenting the stored hash can rotate it."""
        users = UserRepository(session)
        user = await make_user()
        expires = utcnow() + timedelta(days=7)
        await users.set_refresh_token(user.id, "hash-1", expires)

        assert await users.rotate_refresh_token(user.id, "hash-1", "hash-2", expires) is True
        assert await users.rotate_refresh_token(user.id, "hash-1", "hash-3", expires) is False
        assert (await users.get_by_refresh_hash("hash-2")).id == user.id
        assert await users.get_by_refresh_hash("hash-3") is None

    @pytest.mark.asyncio
    async def test_rotate_expired_refresh_token(self, session, make_user):
        users = UserRepository(session)
        user = await make_user()
        await users.set_refresh_token(user.id, "hash-1", utcnow() - timedelta(seconds=1))

        assert await users.rotate_refresh_token(
            user.id, "hash-1", "hash-2", utcnow() + timedelta(days=7)
        ) is False

    @pytest.mark.asyncio
    async def test_clear_refresh_token(self, session, make_user):
        users = UserRepository(session)
        user = await make_user()
        await users.set_refresh_token(user.id, "hash-1", utcnow() + timedelta(days=7))
        await users.set_refresh_token(user.id, None, None)
        assert await users.get_by_refresh_hash("hash-1") is None


class TestOrganizationRepository:
    @pytest.mark.asyncio
    async def test_slug_exists(self, session, make_organization):
        await make_organization(slug="acme")
        organizations = OrganizationRepository(session)
        assert await organizations.slug_exists("acme") is True
        assert await organizations.slug_exists("globex") is False

    @pytest.mark.asyncio
    async def test_defaults(self, make_organization):
        organization = await make_organization()
        assert organization.max_members == 5
        assert organization.default_term_length_years == 3
        assert organization.enable_term_tracking is True


class TestMemberRepository:
    """Tests for MemberRepository."""

    @pytest.mark.asyncio
    async def test_active_lookups(self, session, make_user, make_organization):
        members = MemberRepository(session)
        user = await make_user()
        first = await make_organization()
        second = await make_organization()
        await members.create(organization_id=first.id, user_id=user.id, role="owner",
                             joined_at=utcnow() - timedelta(days=1))
        membership = await members.create(organization_id=second.id, user_id=user.id, role="viewer")

        rows = await members.list_active_for_user(user.id)
        assert [org.id for _, org in rows] == [second.id, first.id]
        assert await members.count_active(second.id) == 1

        await members.deactivate(membership.id)
        assert await members.get_active(user.id, second.id) is None
        assert (await members.get_by_user_and_org(user.id, second.id)).is_active is False
        assert len(await members.list_active_for_user(user.id)) == 1
        assert await members.count_active(second.id) == 0

    @pytest.mark.asyncio
    async def test_reactivate_only_inactive(self, session, make_user, make_organization):
        members = MemberRepository(session)
        user = await make_user()
        inviter = await make_user()
        organization = await make_organization()
        member = await members.create(organization_id=organization.id, user_id=user.id, role="trustee")

        assert await members.reactivate(member.id, "chair") is False

        await members.deactivate(member.id)
        assert await members.reactivate(member.id, "chair", invited_by=inviter.id) is True

        member = await members.get(member.id)
        assert member.is_active is True
        assert member.role == "chair"
        assert member.invited_by == inviter.id

    @pytest.mark.asyncio
    async def test_list_for_org(self, session, make_user, make_organization):
        members = MemberRepository(session)
        organization = await make_organization()
        active_user = await make_user(first_name="Active")
        gone_user = await make_user(first_name="Gone")
        await members.create(organization_id=organization.id, user_id=active_user.id, role="trustee")
        gone = await members.create(organization_id=organization.id, user_id=gone_user.id, role="viewer")
        await members.deactivate(gone.id)

        rows = await members.list_for_org(organization.id)
        assert [user.first_name for _, user in rows] == ["Active"]
        assert len(await members.list_for_org(organization.id, include_inactive=True)) == 2


class TestInvitationRepository:
    """Tests for InvitationRepository."""

    @pytest.mark.asyncio
    async def test_create_normalizes_email(self, make_invitation):
        invitation = await make_invitation()
        assert invitation.email == "invitee@example.com"

    @pytest.mark.asyncio
    async def test_get_pending(self, session, make_invitation):
        invitation = await make_invitation()
        invitations = InvitationRepository(session)

        pending = await invitations.get_pending(invitation.organization_id, "INVITEE@example.com")
        assert pending.id == invitation.id
        assert await invitations.get_pending(invitation.organization_id, "other@example.com") is None

    @pytest.mark.asyncio
    async def test_expired_is_not_pending(self, session, make_invitation):
        invitation = await make_invitation(expires_at=utcnow() - timedelta(seconds=1))
        invitations = InvitationRepository(session)

        assert await invitations.get_pending(invitation.organization_id, invitation.email) is None
        assert await invitations.list_pending(invitation.organization_id) == []
        assert await invitations.mark_accepted(invitation.id) is False

    @pytest.mark.asyncio
    async def test_mark_accepted_once(self, session, make_invitation, make_user):
        """A second accept of the same row reports failure."""
        invitation = await make_invitation()
        user = await make_user()
        invitations = InvitationRepository(session)

        assert await invitations.mark_accepted(invitation.id, user.id) is True
        assert await invitations.mark_accepted(invitation.id, user.id) is False
        assert (await invitations.get(invitation.id)).accepted_by == user.id

    @pytest.mark.asyncio
    async def test_cancel(self, session, make_invitation):
        invitation = await make_invitation()
        invitations = InvitationRepository(session)

        assert await invitations.cancel(invitation.id) is True
        assert await invitations.cancel(invitation.id) is False
        assert await invitations.mark_accepted(invitation.id) is False

    @pytest.mark.asyncio
    async def test_cannot_cancel_accepted(self, session, make_invitation):
        invitation = await make_invitation()
        invitations = InvitationRepository(session)
        await invitations.mark_accepted(invitation.id)

        assert await invitations.cancel(invitation.id) is False

    @pytest.mark.asyncio
    async def test_refresh_token(self, session, make_invitation):
        invitation = await make_invitation()
        invitations = InvitationRepository(session)
        expires = utcnow() + timedelta(days=7)

        assert await invitations.refresh_token(invitation.id, "new-hash", expires, {"role": "chair"}) is True
        refreshed = await invitations.get_by_token_hash("new-hash")
        assert refreshed.id == invitation.id
        assert refreshed.role == "chair"

        await invitations.mark_accepted(invitation.id)
        assert await invitations.refresh_token(invitation.id, "newer-hash", expires) is False
