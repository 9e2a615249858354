"""
Tests for the mutation reliability layer.

Writers are fakes that record calls; debounce windows are a few
milliseconds so the suite stays fast.
"""
from __future__ import annotations

import asyncio
from typing import Any

import pytest

from mixroom.errors import NotFoundError, TransientError
from mixroom.sync.mutations import EntityRef, MutationQueue, SlotState

RELEASE = EntityRef("release", "rel-1")
DEBOUNCE_MS = 20


class RecordingNotifier:
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[tuple[str, Any]] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str, retry) -> None:
        self.errors.append((message, retry))


class FakeWriter:
    """Records writes; optionally fails or blocks until released."""

    def __init__(self) -> None:
        self.calls: list[tuple[EntityRef, dict[str, Any]]] = []
        self.failures: list[Exception] = []
        self.gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, entity_ref: EntityRef, patch: dict[str, Any]) -> None:
        self.calls.append((entity_ref, patch))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.failures:
                raise self.failures.pop(0)
        finally:
            self.in_flight -= 1


@pytest.fixture
def writer() -> FakeWriter:
    return FakeWriter()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def queue(writer, notifier) -> MutationQueue:
    return MutationQueue(writer=writer, notifier=notifier, debounce_ms=DEBOUNCE_MS)


async def _settle(queue: MutationQueue) -> None:
    await asyncio.sleep(DEBOUNCE_MS * 3 / 1000)
    await queue.flush()


# =============================================================================
# Coalescing
# =============================================================================


class TestCoalescing:

    @pytest.mark.asyncio
    async def test_three_edits_one_write_with_last_value(self, queue, writer) -> None:
        queue.submit(RELEASE, {"title": "N"})
        queue.submit(RELEASE, {"title": "Ni"})
        queue.submit(RELEASE, {"title": "Night"})
        assert queue.state(RELEASE, "title") == SlotState.PENDING
        assert queue.pending_value(RELEASE, "title") == "Night"

        await _settle(queue)

        assert writer.calls == [(RELEASE, {"title": "Night"})]
        assert queue.state(RELEASE, "title") == SlotState.IDLE

    @pytest.mark.asyncio
    async def test_nothing_written_before_debounce(self, queue, writer) -> None:
        queue.submit(RELEASE, {"title": "Night"})
        await asyncio.sleep(0)
        assert writer.calls == []
        await queue.aclose()

    @pytest.mark.asyncio
    async def test_fields_are_independent(self, queue, writer) -> None:
        queue.submit(RELEASE, {"title": "Night", "artist": "Nova"})
        await _settle(queue)
        assert sorted(writer.calls, key=lambda c: list(c[1])) == [
            (RELEASE, {"artist": "Nova"}),
            (RELEASE, {"title": "Night"}),
        ]

    @pytest.mark.asyncio
    async def test_entities_are_independent(self, queue, writer) -> None:
        other = EntityRef("release", "rel-2")
        queue.submit(RELEASE, {"title": "A"})
        queue.submit(other, {"title": "B"})
        await _settle(queue)
        assert len(writer.calls) == 2


# =============================================================================
# In-flight ordering
# =============================================================================


class TestInFlight:

    @pytest.mark.asyncio
    async def test_edit_during_flight_waits_for_completion(self, queue, writer) -> None:
        writer.gate = asyncio.Event()
        queue.submit(RELEASE, {"title": "first"})
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)
        assert queue.state(RELEASE, "title") == SlotState.IN_FLIGHT

        queue.submit(RELEASE, {"title": "second"})
        queue.submit(RELEASE, {"title": "third"})
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)
        # Debounce elapsed but the first write has not returned
        assert len(writer.calls) == 1
        assert queue.pending_value(RELEASE, "title") == "third"

        writer.gate.set()
        await _settle(queue)

        assert [c[1]["title"] for c in writer.calls] == ["first", "third"]
        assert writer.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_flush_sends_pending_immediately(self, queue, writer) -> None:
        queue.submit(RELEASE, {"title": "Night"})
        await queue.flush()
        assert writer.calls == [(RELEASE, {"title": "Night"})]


# =============================================================================
# Failure and retry
# =============================================================================


class TestRetry:

    @pytest.mark.asyncio
    async def test_transient_failure_offers_retry_with_same_args(self, queue, writer, notifier) -> None:
        writer.failures.append(TransientError("connection reset"))
        queue.submit(RELEASE, {"title": "Night"})
        await _settle(queue)

        assert len(writer.calls) == 1
        assert notifier.successes == []
        message, retry = notifier.errors[0]
        assert "title" in message
        assert retry is not None

        # No automatic retry happened
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)
        assert len(writer.calls) == 1

        retry()
        await queue.flush()
        assert writer.calls[1] == (RELEASE, {"title": "Night"})
        assert notifier.successes == ["Saved title"]

    @pytest.mark.asyncio
    async def test_stale_retry_does_not_overwrite_newer_edit(self, queue, writer, notifier) -> None:
        writer.failures.append(TransientError("connection reset"))
        queue.submit(RELEASE, {"title": "A"})
        await _settle(queue)
        _, retry = notifier.errors[0]

        queue.submit(RELEASE, {"title": "B"})
        retry()
        await _settle(queue)

        assert [c[1]["title"] for c in writer.calls] == ["A", "B"]
        assert notifier.successes == ["Saved title"]

    @pytest.mark.asyncio
    async def test_stale_retry_after_newer_edit_saved_is_noop(self, queue, writer, notifier) -> None:
        writer.failures.append(TransientError("connection reset"))
        queue.submit(RELEASE, {"title": "A"})
        await _settle(queue)
        _, retry = notifier.errors[0]

        queue.submit(RELEASE, {"title": "B"})
        await _settle(queue)
        retry()
        await queue.flush()

        assert [c[1]["title"] for c in writer.calls] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_stale_retry_while_newer_write_in_flight(self, queue, writer, notifier) -> None:
        writer.failures.append(TransientError("connection reset"))
        queue.submit(RELEASE, {"title": "A"})
        await _settle(queue)
        _, retry = notifier.errors[0]

        writer.gate = asyncio.Event()
        queue.submit(RELEASE, {"title": "B"})
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)
        assert queue.state(RELEASE, "title") == SlotState.IN_FLIGHT

        retry()
        assert queue.pending_value(RELEASE, "title") is None
        writer.gate.set()
        await _settle(queue)

        assert [c[1]["title"] for c in writer.calls] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_terminal_failure_has_no_retry(self, queue, writer, notifier) -> None:
        writer.failures.append(NotFoundError("Release gone"))
        queue.submit(RELEASE, {"title": "Night"})
        await _settle(queue)
        assert notifier.errors[0][1] is None

    @pytest.mark.asyncio
    async def test_unknown_error_is_reported_not_masked(self, queue, writer, notifier) -> None:
        writer.failures.append(RuntimeError("boom"))
        queue.submit(RELEASE, {"title": "Night"})
        await _settle(queue)
        assert len(notifier.errors) == 1
        assert notifier.errors[0][1] is None
        assert queue.state(RELEASE, "title") == SlotState.IDLE

    @pytest.mark.asyncio
    async def test_success_notifies(self, queue, notifier) -> None:
        queue.submit(RELEASE, {"title": "Night"})
        await _settle(queue)
        assert notifier.successes == ["Saved title"]


# =============================================================================
# Discard
# =============================================================================


class TestDiscard:

    @pytest.mark.asyncio
    async def test_discard_drops_pending_write(self, queue, writer) -> None:
        queue.submit(RELEASE, {"title": "Night", "artist": "Nova"})
        queue.discard(RELEASE, "title")
        await _settle(queue)
        assert writer.calls == [(RELEASE, {"artist": "Nova"})]

    @pytest.mark.asyncio
    async def test_discard_entity(self, queue, writer) -> None:
        queue.submit(RELEASE, {"title": "Night", "artist": "Nova"})
        queue.discard(RELEASE)
        await _settle(queue)
        assert writer.calls == []

    @pytest.mark.asyncio
    async def test_aclose_waits_for_in_flight(self, queue, writer) -> None:
        queue.submit(RELEASE, {"title": "Night"})
        await asyncio.sleep(DEBOUNCE_MS * 2 / 1000)
        queue.submit(RELEASE, {"title": "dropped"})
        await queue.aclose()
        assert writer.calls == [(RELEASE, {"title": "Night"})]
