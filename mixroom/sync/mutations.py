"""Mutation reliability layer for in-place editor edits.

``MutationQueue.submit(entity_ref, patch)`` is fire-and-forget. Each
``(entity_ref, field)`` pair owns one slot that moves through::

    idle → pending(value, timer) → in_flight(value) → idle
                                                    → pending(newer value)

- Edits to the same field inside the debounce window collapse into one
  write carrying the latest value.
- At most one write per field is in flight. Edits arriving meanwhile wait
  as the pending value and are sent once the in-flight write completes and
  their own debounce has elapsed.
- A failed write is reported to the notifier with a retry action that
  resubmits the exact same arguments. Nothing retries on its own. The
  action does nothing once a newer edit to the same field was submitted.
- Last write wins; there is no merge.

All slot state is touched only from the event loop that owns the queue, so
no lock is taken. The only suspension point is the writer call.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from mixroom.config import settings
from mixroom.errors import MixroomError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityRef:
    """Addresses one editable entity, e.g. ``EntityRef("release", release_id)``."""

    kind: str
    id: str


Writer = Callable[[EntityRef, dict[str, Any]], Awaitable[Any]]
RetryAction = Callable[[], None]


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str, retry: RetryAction | None) -> None: ...


class LoggingNotifier:
    """Notifier for headless sessions: reports outcomes to the log only."""

    def success(self, message: str) -> None:
        logger.info(message)

    def error(self, message: str, retry: RetryAction | None) -> None:
        logger.warning("%s (retry available: %s)", message, retry is not None)


class SlotState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    IN_FLIGHT = "in_flight"


@dataclass
class _Slot:
    # Bumped on every submission; a retry action resends only while the
    # slot is still at the generation whose write failed.
    generation: int = 0
    has_pending: bool = False
    pending: Any = None
    timer: asyncio.TimerHandle | None = None
    in_flight: asyncio.Task[None] | None = None

    @property
    def state(self) -> SlotState:
        if self.in_flight is not None:
            return SlotState.IN_FLIGHT
        if self.has_pending:
            return SlotState.PENDING
        return SlotState.IDLE


_SlotKey = tuple[EntityRef, str]


@dataclass
class MutationQueue:
    """Debounced, ordered, per-field writer for one editor session."""

    writer: Writer
    notifier: Notifier = field(default_factory=LoggingNotifier)
    debounce_ms: int = field(default_factory=lambda: settings.mutation_debounce_ms)
    _slots: dict[_SlotKey, _Slot] = field(default_factory=dict, init=False, repr=False)

    def submit(self, entity_ref: EntityRef, patch: Mapping[str, Any]) -> None:
        """Queue *patch*; each field is debounced and written on its own."""
        loop = asyncio.get_running_loop()
        for name, value in patch.items():
            key = (entity_ref, name)
            slot = self._slots.setdefault(key, _Slot())
            slot.generation += 1
            slot.pending = value
            slot.has_pending = True
            if slot.timer is not None:
                slot.timer.cancel()
            slot.timer = loop.call_later(self.debounce_ms / 1000, self._debounce_elapsed, key)
            logger.debug("Slot %s.%s %s → pending", entity_ref.kind, name, slot.state.value)

    def retry(self, entity_ref: EntityRef, patch: Mapping[str, Any]) -> None:
        """Resubmit *patch* without waiting out the debounce window.

        Still honours at-most-one-in-flight: a field with a write in flight
        sends once that write completes.
        """
        for name, value in patch.items():
            key = (entity_ref, name)
            slot = self._slots.setdefault(key, _Slot())
            slot.generation += 1
            slot.pending = value
            slot.has_pending = True
            if slot.timer is not None:
                slot.timer.cancel()
                slot.timer = None
            if slot.in_flight is None:
                self._start(key)

    def discard(self, entity_ref: EntityRef, field_name: str | None = None) -> None:
        """Drop pending (not yet sent) edits; in-flight writes still complete."""
        for (ref, name), slot in self._slots.items():
            if ref != entity_ref or (field_name is not None and name != field_name):
                continue
            if slot.timer is not None:
                slot.timer.cancel()
                slot.timer = None
            if slot.has_pending:
                logger.debug("Discarded pending edit to %s.%s", ref.kind, name)
            slot.has_pending = False
            slot.pending = None

    def state(self, entity_ref: EntityRef, field_name: str) -> SlotState:
        slot = self._slots.get((entity_ref, field_name))
        return slot.state if slot is not None else SlotState.IDLE

    def pending_value(self, entity_ref: EntityRef, field_name: str) -> Any:
        slot = self._slots.get((entity_ref, field_name))
        return slot.pending if slot is not None and slot.has_pending else None

    async def flush(self) -> None:
        """Send every pending edit now and wait until all slots are idle."""
        while True:
            for key, slot in list(self._slots.items()):
                if slot.timer is not None:
                    slot.timer.cancel()
                    slot.timer = None
                    if slot.in_flight is None:
                        self._start(key)
            tasks = [s.in_flight for s in self._slots.values() if s.in_flight is not None]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        """Drop all pending edits and wait for in-flight writes to settle."""
        for ref in {ref for ref, _ in self._slots}:
            self.discard(ref)
        tasks = [s.in_flight for s in self._slots.values() if s.in_flight is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._slots.clear()

    # ── internals ─────────────────────────────────────────────────────────────

    def _debounce_elapsed(self, key: _SlotKey) -> None:
        slot = self._slots.get(key)
        if slot is None:
            return
        slot.timer = None
        if slot.has_pending and slot.in_flight is None:
            self._start(key)

    def _start(self, key: _SlotKey) -> None:
        slot = self._slots[key]
        value = slot.pending
        slot.pending = None
        slot.has_pending = False
        slot.in_flight = asyncio.get_running_loop().create_task(
            self._write(key, value, slot.generation)
        )
        logger.debug("Slot %s.%s → in_flight", key[0].kind, key[1])

    def _retry_failed(self, key: _SlotKey, value: Any, generation: int) -> None:
        slot = self._slots.get(key)
        if slot is None:
            # Queue was closed.
            return
        if slot.generation != generation:
            logger.debug("Retry of %s.%s skipped: superseded by a newer edit", key[0].kind, key[1])
            return
        self.retry(key[0], {key[1]: value})

    async def _write(self, key: _SlotKey, value: Any, generation: int) -> None:
        entity_ref, name = key
        patch = {name: value}
        try:
            await self.writer(entity_ref, dict(patch))
        except MixroomError as exc:
            if exc.retryable:
                logger.warning("Write to %s.%s failed: %s", entity_ref.kind, name, exc.message)
                self.notifier.error(
                    f"Could not save {name}: {exc.message}",
                    lambda: self._retry_failed(key, value, generation),
                )
            else:
                logger.warning("Write to %s.%s rejected: %s", entity_ref.kind, name, exc.message)
                self.notifier.error(f"Could not save {name}: {exc.message}", None)
        except Exception:
            logger.exception("Unexpected error writing %s.%s", entity_ref.kind, name)
            self.notifier.error(f"Could not save {name}", None)
        else:
            self.notifier.success(f"Saved {name}")
        finally:
            slot = self._slots.get(key)
            if slot is not None:
                slot.in_flight = None
                if slot.has_pending and slot.timer is None:
                    self._start(key)
                else:
                    logger.debug("Slot %s.%s → %s", entity_ref.kind, name, slot.state.value)
