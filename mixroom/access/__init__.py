"""Access control: role resolution and the permission policy."""
from __future__ import annotations

from mixroom.access.policy import (
    CAPABILITY_MATRIX,
    Capability,
    can,
    can_delete_release,
    can_edit,
    can_edit_creative,
    can_edit_payment,
    can_manage_team,
    capabilities_for,
    require,
)
from mixroom.access.roles import MEMBER_ROLES, Role, resolve_role

__all__ = [
    "CAPABILITY_MATRIX",
    "Capability",
    "MEMBER_ROLES",
    "Role",
    "can",
    "can_delete_release",
    "can_edit",
    "can_edit_creative",
    "can_edit_payment",
    "can_manage_team",
    "capabilities_for",
    "require",
    "resolve_role",
]
