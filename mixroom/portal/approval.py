"""
Track Approval State Machine.

Explicit per-track approval transitions for the client portal.
Never mutate ``approval_status`` directly — always go through assert_transition().

States:
    AWAITING_REVIEW   — initial; the client has not acted yet
    CHANGES_REQUESTED — the client left feedback on this track
    APPROVED          — the client approved this track
    DELIVERED         — an editor marked final delivery (terminal)

Transitions (and who may trigger them):
    AWAITING_REVIEW   → CHANGES_REQUESTED   portal visitor
    AWAITING_REVIEW   → APPROVED            portal visitor
    CHANGES_REQUESTED → APPROVED            portal visitor
    APPROVED          → DELIVERED           editor (owner or collaborator)

DELIVERED has no outgoing transitions. There is no batch transition:
delivering N tracks is N independently validated transitions.
"""

from __future__ import annotations

import logging
from enum import Enum

from mixroom.errors import InvalidTransitionError, UnauthorizedError

logger = logging.getLogger(__name__)


class ApprovalStatus(str, Enum):
    """Per-track approval states."""

    AWAITING_REVIEW = "awaiting_review"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"
    DELIVERED = "delivered"


class PortalStatus(str, Enum):
    """Release-level rollup of the visible tracks' approval states."""

    IN_REVIEW = "in_review"
    APPROVED = "approved"
    DELIVERED = "delivered"


class ApprovalActor(str, Enum):
    """Who is attempting a transition."""

    PORTAL_VISITOR = "portal_visitor"
    EDITOR = "editor"


class ApprovalAction(str, Enum):
    """Named actions exposed at the API, each mapping to one target state."""

    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    DELIVER = "deliver"


ACTION_TARGETS: dict[ApprovalAction, ApprovalStatus] = {
    ApprovalAction.APPROVE: ApprovalStatus.APPROVED,
    ApprovalAction.REQUEST_CHANGES: ApprovalStatus.CHANGES_REQUESTED,
    ApprovalAction.DELIVER: ApprovalStatus.DELIVERED,
}

INITIAL_STATUS = ApprovalStatus.AWAITING_REVIEW

TERMINAL_STATES: frozenset[ApprovalStatus] = frozenset({ApprovalStatus.DELIVERED})

_VISITOR = frozenset({ApprovalActor.PORTAL_VISITOR})
_EDITOR = frozenset({ApprovalActor.EDITOR})

# Allowed transitions: from_state -> {to_state: actors allowed to trigger it}.
_TRANSITIONS: dict[ApprovalStatus, dict[ApprovalStatus, frozenset[ApprovalActor]]] = {
    ApprovalStatus.AWAITING_REVIEW: {
        ApprovalStatus.CHANGES_REQUESTED: _VISITOR,
        ApprovalStatus.APPROVED: _VISITOR,
    },
    ApprovalStatus.CHANGES_REQUESTED: {
        ApprovalStatus.APPROVED: _VISITOR,
    },
    ApprovalStatus.APPROVED: {
        ApprovalStatus.DELIVERED: _EDITOR,
    },
    # Terminal state has no outgoing transitions.
    ApprovalStatus.DELIVERED: {},
}


def parse_status(value: str | None) -> ApprovalStatus:
    """Coerce a stored status; a missing value is the initial state."""
    if value is None:
        return INITIAL_STATUS
    return ApprovalStatus(value)


def assert_transition(
    from_state: ApprovalStatus,
    to_state: ApprovalStatus,
    actor: ApprovalActor,
) -> None:
    """
    Validate that *actor* may move a track from *from_state* to *to_state*.

    Raises:
        InvalidTransitionError: The transition is not defined.
        UnauthorizedError: The transition exists but *actor* may not trigger it.
    """
    allowed = _TRANSITIONS.get(from_state, {})
    actors = allowed.get(to_state)
    if actors is None:
        logger.warning(
            "Rejected approval transition %s → %s by %s",
            from_state.value, to_state.value, actor.value,
        )
        raise InvalidTransitionError(from_state, to_state)
    if actor not in actors:
        logger.warning(
            "Actor %s may not move a track %s → %s",
            actor.value, from_state.value, to_state.value,
        )
        raise UnauthorizedError(
            f"{actor.value} may not move a track to {to_state.value}"
        )


def is_terminal(status: ApprovalStatus) -> bool:
    """Check if a status is terminal (no further transitions)."""
    return status in TERMINAL_STATES


def allowed_targets(status: ApprovalStatus, actor: ApprovalActor) -> list[ApprovalStatus]:
    """States *actor* may move a track to from *status* (for enabling UI actions)."""
    return [
        target
        for target, actors in _TRANSITIONS.get(status, {}).items()
        if actor in actors
    ]


def allowed_actions(status: ApprovalStatus, actor: ApprovalActor) -> list[ApprovalAction]:
    """Actions *actor* may take on a track in *status*, in declaration order."""
    targets = allowed_targets(status, actor)
    return [action for action, target in ACTION_TARGETS.items() if target in targets]
