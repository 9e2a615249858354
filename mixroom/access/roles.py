"""Role resolution for a (release, user) pair.

Resolution order:
    1. The release owner is OWNER, regardless of any membership row.
    2. An *accepted* membership yields its stored role.
    3. Anything else is NONE.

A missing release raises ``NotFoundError`` so callers can tell "no access"
apart from "no such release". Portal share tokens never resolve to a role.
Roles are resolved per request and never cached, so a removed membership
takes effect on the next call.
"""
from __future__ import annotations

import logging
from enum import Enum

from mixroom.db.models import Release, ReleaseMember
from mixroom.db.store import NOT_NULL, DataStore
from mixroom.errors import NotFoundError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """A user's resolved permission tier on one release."""

    OWNER = "owner"
    COLLABORATOR = "collaborator"
    CLIENT = "client"
    NONE = "none"


# Roles that may be stored on a membership row.
MEMBER_ROLES: frozenset[Role] = frozenset({Role.COLLABORATOR, Role.CLIENT})


def parse_member_role(value: str) -> Role:
    """Map a stored membership role to ``Role``; unknown values grant nothing."""
    try:
        role = Role(value)
    except ValueError:
        logger.warning("Unknown membership role %r treated as none", value)
        return Role.NONE
    return role if role in MEMBER_ROLES else Role.NONE


async def resolve_role(store: DataStore, release_id: str, user_id: str | None) -> Role:
    """Return *user_id*'s role on *release_id*.

    Raises:
        NotFoundError: The release does not exist.
    """
    release = await store.get(Release, id=release_id)
    if release is None:
        raise NotFoundError(f"Release {release_id} not found")

    if user_id and release.owner_id == user_id:
        return Role.OWNER
    if not user_id:
        return Role.NONE

    member = await store.get(
        ReleaseMember,
        release_id=release_id,
        user_id=user_id,
        accepted_at=NOT_NULL,
    )
    if member is None:
        return Role.NONE
    return parse_member_role(member.role)
