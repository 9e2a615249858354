"""Permission policy: a role × capability matrix.

The matrix is the single source of truth for what each role may do. Every
mutating operation calls ``require`` before persisting; hiding controls in a
UI is advisory only.

    capability        owner  collaborator  client  none
    VIEW_RELEASE        ✓         ✓           ✓
    EDIT_CREATIVE       ✓         ✓           ✓
    EDIT_RELEASE        ✓         ✓
    EDIT_PAYMENT        ✓
    MANAGE_TEAM         ✓
    DELETE_RELEASE      ✓

All checks are total over ``Role``: no I/O, no exceptions (except ``require``).
"""
from __future__ import annotations

import logging
from enum import Enum

from mixroom.access.roles import Role
from mixroom.errors import UnauthorizedError

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Actions gated by the policy."""

    VIEW_RELEASE = "view_release"
    # references, intent, elements, notes
    EDIT_CREATIVE = "edit_creative"
    # metadata, cover art, direction, status, specs, tracks, share settings
    EDIT_RELEASE = "edit_release"
    # fee total, currency, paid amount
    EDIT_PAYMENT = "edit_payment"
    MANAGE_TEAM = "manage_team"
    DELETE_RELEASE = "delete_release"


_CLIENT_CAPABILITIES: frozenset[Capability] = frozenset({
    Capability.VIEW_RELEASE,
    Capability.EDIT_CREATIVE,
})

_COLLABORATOR_CAPABILITIES: frozenset[Capability] = _CLIENT_CAPABILITIES | {
    Capability.EDIT_RELEASE,
}

CAPABILITY_MATRIX: dict[Role, frozenset[Capability]] = {
    Role.OWNER: frozenset(Capability),
    Role.COLLABORATOR: _COLLABORATOR_CAPABILITIES,
    Role.CLIENT: _CLIENT_CAPABILITIES,
    Role.NONE: frozenset(),
}


def can(role: Role, capability: Capability) -> bool:
    """Return True if *role* grants *capability*."""
    return capability in CAPABILITY_MATRIX.get(role, frozenset())


def require(role: Role, capability: Capability) -> None:
    """Raise ``UnauthorizedError`` unless *role* grants *capability*."""
    if not can(role, capability):
        logger.warning("Denied %s for role %s", capability.value, role.value)
        raise UnauthorizedError(
            f"Role '{role.value}' may not {capability.value.replace('_', ' ')}"
        )


def can_edit(role: Role) -> bool:
    """Owner or collaborator — release metadata, direction, status, specs, tracks, share."""
    return can(role, Capability.EDIT_RELEASE)


def can_edit_creative(role: Role) -> bool:
    """Any member role — references, intent, elements, notes."""
    return can(role, Capability.EDIT_CREATIVE)


def can_edit_payment(role: Role) -> bool:
    return can(role, Capability.EDIT_PAYMENT)


def can_manage_team(role: Role) -> bool:
    return can(role, Capability.MANAGE_TEAM)


def can_delete_release(role: Role) -> bool:
    return can(role, Capability.DELETE_RELEASE)


def capabilities_for(role: Role) -> list[str]:
    """Sorted capability names granted to *role* (for client-side hints)."""
    return sorted(c.value for c in CAPABILITY_MATRIX.get(role, frozenset()))
