"""Error taxonomy shared by the access, portal and sync layers.

Kinds:
    NotFoundError          — release/share/track/version absent or revoked.
                             Never conflated with the ``none`` role.
    UnauthorizedError      — the policy denies the action for the caller's role.
    InvalidTransitionError — the approval state machine rejects a move.
    ConflictError          — a membership invariant would be violated.
    TransientError         — network/store failure on a write; always retryable.

NotFound, Unauthorized and InvalidTransition are terminal for the triggering
request. Transient is recovered by the mutation layer (user-triggered retry).
"""
from __future__ import annotations


class MixroomError(Exception):
    """Base class for domain errors raised by the core."""

    kind: str = "error"
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str = ""):
        self.message = message or self.kind
        super().__init__(self.message)


class NotFoundError(MixroomError):
    """The addressed entity does not exist (or its share was revoked)."""

    kind = "not_found"
    status_code = 404


class UnauthorizedError(MixroomError):
    """The caller's role does not grant the requested capability."""

    kind = "unauthorized"
    status_code = 403


class ConflictError(MixroomError):
    """The write would break a uniqueness invariant."""

    kind = "conflict"
    status_code = 409


class TransientError(MixroomError):
    """A write did not land because the store or network failed."""

    kind = "transient"
    status_code = 503
    retryable = True


class InvalidTransitionError(MixroomError):
    """Raised when an approval transition violates the state machine."""

    kind = "invalid_transition"
    status_code = 409

    def __init__(self, from_state: object, to_state: object):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition: {getattr(from_state, 'value', from_state)} "
            f"→ {getattr(to_state, 'value', to_state)}"
        )
