"""Tests for ParallelPattern."""

import asyncio

import pytest

from plexus.core.errors import ConfigurationError
from plexus.core.patterns import ParallelConfig, ParallelPattern
from plexus.core.progress import EventKind, ProgressChannel

# Later tasks finish first: German, then Spanish, then French.
REVERSED_DELAYS = {"French": 0.03, "Spanish": 0.02, "German": 0.01}


def reversed_delay(request):
    return next(d for language, d in REVERSED_DELAYS.items() if language in request.prompt)


class TestParallelPattern:
    """Tests for the parallel pattern."""

    @pytest.mark.asyncio
    async def test_results_in_declaration_order(self, context, channel, make_provider, kinds):
        context.provider = make_provider(delay=reversed_delay)

        result = await ParallelPattern().run("Hello", context)

        completed = [e.payload for e in channel.events if e.kind.value == "step-complete"]
        assert [c["taskNumber"] for c in completed] == [3, 2, 1]

        assert kinds()[-2:] == ["parallel-complete", "complete"]
        results = result.payload["results"]
        assert [r["task"] for r in results] == [1, 2, 3]
        assert [r["result"]["text"] for r in results] == [
            "echo: Translate to French: Hello",
            "echo: Translate to Spanish: Hello",
            "echo: Translate to German: Hello",
        ]
        assert channel.events[0].payload["taskCount"] == 3

    @pytest.mark.asyncio
    async def test_fail_fast_cancels_siblings(self, context, channel, make_provider, kinds):
        context.provider = make_provider(
            delay=lambda r: 0.0 if "Spanish" in r.prompt else 0.5,
            fail_when=lambda r: "Spanish" in r.prompt,
        )

        result = await ParallelPattern().run("hola", context)

        assert kinds()[-1] == "error"
        assert "step-complete" not in kinds()
        assert result.error == "failed on: Translate to Spanish: hola"
        assert result.diagnostics["taskNumber"] == 2

    @pytest.mark.asyncio
    async def test_collect_all_failures(self, context, make_provider):
        context.provider = make_provider(fail_when=lambda r: "Spanish" in r.prompt)
        pattern = ParallelPattern(ParallelConfig(fail_fast=False))

        result = await pattern.run("hola", context)

        assert result.success is False
        assert result.error.startswith("1 of 3 parallel tasks failed")
        assert result.diagnostics["failedTasks"] == [
            {"taskNumber": 2, "error": "failed on: Translate to Spanish: hola"}
        ]
        assert [r["task"] for r in result.diagnostics["results"]] == [1, 3]

    @pytest.mark.asyncio
    async def test_cancellation_stops_all_tasks(self, context, token, make_provider, kinds):
        def cancel_on_french(request):
            if "French" in request.prompt:
                token.cancel()
            return "done"

        context.provider = make_provider(
            text=cancel_on_french, delay=lambda r: 0.0 if "French" in r.prompt else 0.5
        )

        result = await ParallelPattern().run("x", context)

        assert result.cancelled is True
        assert "error" not in kinds()
        assert "complete" not in kinds()

    def test_needs_tasks(self):
        with pytest.raises(ConfigurationError):
            ParallelConfig(tasks=[])

    @pytest.mark.asyncio
    async def test_no_events_after_cancellation_under_contention(
        self, context, token, make_provider
    ):
        emitted_at_cancel = []

        async def cancel_on_first_completion(event):
            if event.kind is EventKind.STEP_COMPLETE and not token.is_cancelled:
                token.cancel()
                emitted_at_cancel.append(len(channel.events))
            # let the other tasks queue up on the channel lock
            await asyncio.sleep(0)

        channel = ProgressChannel(on_event=cancel_on_first_completion)
        context = context.with_channel(channel)
        context.provider = make_provider()

        result = await ParallelPattern().run("Hello", context)

        assert result.cancelled is True
        assert emitted_at_cancel == [6]
        assert len(channel.events) == 6
        assert channel.events[-1].kind is EventKind.STEP_COMPLETE
