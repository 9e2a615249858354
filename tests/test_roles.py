"""Tests for role resolution against the store."""
from __future__ import annotations

import pytest

from mixroom.access.roles import Role, parse_member_role, resolve_role
from mixroom.db.models import Release, ReleaseMember, utc_now
from mixroom.errors import NotFoundError

OWNER = "owner-user"
OTHER = "other-user"


@pytest.fixture
async def release(store):
    return await store.insert(Release(owner_id=OWNER, title="Night Drive"))


@pytest.mark.asyncio
async def test_owner_resolves_to_owner(store, release):
    assert await resolve_role(store, release.id, OWNER) == Role.OWNER


@pytest.mark.asyncio
async def test_ownership_dominates_stale_membership(store, release):
    """A leftover membership row for the owner never downgrades them."""
    await store.insert(ReleaseMember(
        release_id=release.id, user_id=OWNER, role="client", accepted_at=utc_now(),
    ))
    assert await resolve_role(store, release.id, OWNER) == Role.OWNER


@pytest.mark.asyncio
async def test_pending_membership_grants_nothing(store, release):
    await store.insert(ReleaseMember(release_id=release.id, user_id=OTHER, role="collaborator"))
    assert await resolve_role(store, release.id, OTHER) == Role.NONE


@pytest.mark.asyncio
async def test_accepted_membership_grants_role(store, release):
    await store.insert(ReleaseMember(
        release_id=release.id, user_id=OTHER, role="client", accepted_at=utc_now(),
    ))
    assert await resolve_role(store, release.id, OTHER) == Role.CLIENT


@pytest.mark.asyncio
async def test_no_relationship_is_none(store, release):
    assert await resolve_role(store, release.id, OTHER) == Role.NONE


@pytest.mark.asyncio
async def test_anonymous_is_none(store, release):
    assert await resolve_role(store, release.id, None) == Role.NONE


@pytest.mark.asyncio
async def test_missing_release_is_not_found(store):
    """Not-found is an error, never folded into Role.NONE."""
    with pytest.raises(NotFoundError):
        await resolve_role(store, "no-such-release", OWNER)


class TestParseMemberRole:

    def test_member_roles(self) -> None:
        assert parse_member_role("collaborator") == Role.COLLABORATOR
        assert parse_member_role("client") == Role.CLIENT

    def test_owner_cannot_be_stored_on_membership(self) -> None:
        assert parse_member_role("owner") == Role.NONE

    def test_unknown_role(self) -> None:
        assert parse_member_role("admin") == Role.NONE
