"""Tests for plexus.core.context and plexus.core.usage modules."""

import asyncio

import pytest

from plexus.core.cancellation import CancellationToken
from plexus.core.context import ExecutionContext
from plexus.core.errors import CancellationRequested, ConfigurationError
from plexus.core.progress import EventKind, ProgressChannel
from plexus.core.usage import ResourceUsage


class TestExecutionContext:
    """Tests for ExecutionContext."""

    def test_defaults(self):
        context = ExecutionContext()

        assert context.provider is None
        assert context.channel is None
        assert context.is_cancelled is False
        assert context.run_id

    def test_with_methods_share_usage(self):
        context = ExecutionContext(model="a")
        derived = context.with_model("b").with_channel(ProgressChannel())

        assert derived.model == "b"
        assert context.model == "a"
        assert derived.usage is context.usage
        assert derived.run_id == context.run_id

    def test_resolve_model(self):
        context = ExecutionContext(model="default")

        assert context.resolve_model() == "default"
        assert context.resolve_model("override") == "override"

    def test_resolve_model_missing(self):
        with pytest.raises(ConfigurationError):
            ExecutionContext().resolve_model()

    def test_require_provider_missing(self):
        with pytest.raises(ConfigurationError, match="provider"):
            ExecutionContext().require_provider()

    @pytest.mark.asyncio
    async def test_emit_without_channel_is_noop(self):
        assert await ExecutionContext().emit(EventKind.PROGRESS, {"step": "x"}) is None

    @pytest.mark.asyncio
    async def test_emit_forwards_to_channel(self):
        channel = ProgressChannel()
        context = ExecutionContext(channel=channel)

        event = await context.emit(EventKind.PROGRESS, {"step": "x"})

        assert channel.events == (event,)

    @pytest.mark.asyncio
    async def test_emit_after_cancel_raises_and_emits_nothing(self):
        channel = ProgressChannel()
        token = CancellationToken()
        context = ExecutionContext(channel=channel, cancellation=token)
        token.cancel()

        with pytest.raises(CancellationRequested):
            await context.emit(EventKind.PROGRESS)
        assert channel.events == ()

    @pytest.mark.asyncio
    async def test_sleep_without_token(self):
        await ExecutionContext().sleep(0)

    @pytest.mark.asyncio
    async def test_wait_for_without_token(self):
        async def answer():
            return "done"

        assert await ExecutionContext().wait_for(answer()) == "done"

    @pytest.mark.asyncio
    async def test_wait_for_ends_when_cancelled(self):
        token = CancellationToken()
        context = ExecutionContext(cancellation=token)
        queue = asyncio.Queue()

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel()

        asyncio.create_task(cancel_soon())
        with pytest.raises(CancellationRequested):
            await context.wait_for(queue.get())


class TestResourceUsage:
    """Tests for ResourceUsage."""

    def test_counts_tokens_from_step_usage(self):
        usage = ResourceUsage()
        usage.add_step_call({"promptTokens": 10, "completionTokens": 5, "totalTokens": 15})
        usage.add_step_call(None)
        usage.add_node_execution()

        assert usage.step_calls == 2
        assert usage.node_executions == 1
        assert usage.total_tokens == 15

    def test_to_metadata(self):
        usage = ResourceUsage()
        usage.add_step_call({"promptTokens": 3, "completionTokens": 4})

        metadata = usage.to_metadata()

        assert metadata["stepCalls"] == 1
        assert metadata["totalTokens"] == 7
        assert metadata["nodeExecutions"] == 0
        assert metadata["durationMs"] >= 0
