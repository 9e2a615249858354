"""Mutation reliability layer and its HTTP writer."""
from mixroom.sync.mutations import (
    EntityRef,
    LoggingNotifier,
    MutationQueue,
    Notifier,
    SlotState,
)

__all__ = [
    "EntityRef",
    "LoggingNotifier",
    "MutationQueue",
    "Notifier",
    "SlotState",
]
