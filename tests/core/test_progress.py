"""Tests for plexus.core.progress module."""

import asyncio

import pytest

from plexus.core.cancellation import CancellationToken
from plexus.core.errors import CancellationRequested, ChannelClosedError
from plexus.core.progress import EventKind, ProgressChannel, ProgressEvent


class TestEventKind:
    """Tests for EventKind."""

    def test_wire_values(self):
        assert EventKind.STEP_COMPLETE.value == "step-complete"
        assert EventKind.PARALLEL_ANALYSIS_COMPLETE.value == "parallel-analysis-complete"
        assert EventKind("text-chunk") is EventKind.TEXT_CHUNK

    def test_terminal_kinds(self):
        terminal = {kind for kind in EventKind if kind.is_terminal}
        assert terminal == {EventKind.COMPLETE, EventKind.ERROR}


class TestProgressEvent:
    """Tests for ProgressEvent."""

    def test_to_dict_uses_wire_names(self):
        event = ProgressEvent(EventKind.PROGRESS, {"step": "Working..."}, 1700000000000)
        assert event.to_dict() == {
            "type": "progress",
            "data": {"step": "Working..."},
            "timestamp": 1700000000000,
        }

    def test_from_dict(self):
        event = ProgressEvent.from_dict({"type": "complete", "data": {"result": 1}, "timestamp": 5})
        assert event.kind is EventKind.COMPLETE
        assert event.payload == {"result": 1}
        assert event.timestamp == 5

    def test_from_dict_wraps_scalar_payload(self):
        event = ProgressEvent.from_dict({"type": "progress", "data": "hi"})
        assert event.payload == {"value": "hi"}

    def test_from_dict_unknown_type(self):
        with pytest.raises(ValueError):
            ProgressEvent.from_dict({"type": "nope", "data": {}})


class TestProgressChannel:
    """Tests for ProgressChannel."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_order(self):
        channel = ProgressChannel()
        await channel.emit(EventKind.START, {"n": 1})
        await channel.emit("progress", {"n": 2})
        await channel.emit(EventKind.COMPLETE, {"n": 3})
        await channel.close()

        received = [event async for event in channel]

        assert [e.kind for e in received] == [
            EventKind.START,
            EventKind.PROGRESS,
            EventKind.COMPLETE,
        ]
        assert [e.payload["n"] for e in received] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_timestamps_strictly_increase(self):
        channel = ProgressChannel()
        for _ in range(50):
            await channel.emit(EventKind.PROGRESS)

        stamps = [e.timestamp for e in channel.events]
        assert all(later > earlier for earlier, later in zip(stamps, stamps[1:]))

    @pytest.mark.asyncio
    async def test_concurrent_writers_do_not_interleave_history(self):
        channel = ProgressChannel()

        async def writer(task: int):
            for i in range(10):
                await channel.emit(EventKind.PROGRESS, {"task": task, "i": i})

        await asyncio.gather(*(writer(t) for t in range(5)))

        events = channel.events
        assert len(events) == 50
        for task in range(5):
            own = [e.payload["i"] for e in events if e.payload["task"] == task]
            assert own == list(range(10))

    @pytest.mark.asyncio
    async def test_emit_after_close_raises(self):
        channel = ProgressChannel()
        await channel.close()

        assert channel.closed
        with pytest.raises(ChannelClosedError):
            await channel.emit(EventKind.PROGRESS)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        channel = ProgressChannel()
        await channel.emit(EventKind.START)
        await channel.close()
        await channel.close()

        received = [event async for event in channel]
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_on_event_callback(self):
        seen = []

        async def on_event(event):
            seen.append(event.kind)

        channel = ProgressChannel(on_event=on_event)
        await channel.emit(EventKind.START)
        await channel.emit(EventKind.COMPLETE)

        assert seen == [EventKind.START, EventKind.COMPLETE]

    @pytest.mark.asyncio
    async def test_single_consumer(self):
        channel = ProgressChannel()
        channel.__aiter__()

        with pytest.raises(RuntimeError, match="single consumer"):
            channel.__aiter__()

    @pytest.mark.asyncio
    async def test_consumer_sees_events_while_writer_runs(self):
        channel = ProgressChannel()

        async def writer():
            for i in range(3):
                await channel.emit(EventKind.PROGRESS, {"i": i})
                await asyncio.sleep(0)
            await channel.close()

        task = asyncio.create_task(writer())
        received = [event.payload["i"] async for event in channel]
        await task

        assert received == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_unknown_kind_rejected(self):
        channel = ProgressChannel()
        with pytest.raises(ValueError):
            await channel.emit("not-a-kind")

    @pytest.mark.asyncio
    async def test_guard_runs_under_the_lock(self):
        token = CancellationToken()

        async def cancel_on_start(event):
            if event.kind is EventKind.START:
                token.cancel()
            await asyncio.sleep(0)

        channel = ProgressChannel(on_event=cancel_on_start)
        first = asyncio.create_task(channel.emit(EventKind.START, guard=token.check))
        queued = asyncio.create_task(channel.emit(EventKind.PROGRESS, guard=token.check))

        await first
        with pytest.raises(CancellationRequested):
            await queued
        assert [event.kind for event in channel.events] == [EventKind.START]
