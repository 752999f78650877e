"""Tests for plexus.core.patterns.base module."""

import pytest

from plexus.core.context import ExecutionContext
from plexus.core.errors import ConfigurationError
from plexus.core.patterns import Pattern, StepSpec, WorkflowResult, run_step


class ExplodingPattern(Pattern):
    name = "exploding"

    async def execute(self, input, context):
        raise RuntimeError("boom")


class EchoPattern(Pattern):
    name = "echo"

    def start_payload(self, input):
        return {"inputLength": len(input)}

    async def execute(self, input, context):
        return {"success": True, "echo": input}


class TestStepSpec:
    """Tests for StepSpec prompt building."""

    def test_template_prompt(self):
        step = StepSpec("s", prompt="Summarize: {input}")

        assert step.build_prompt("text") == "Summarize: text"
        assert step.build_prompt({"text": "generated"}) == "Summarize: generated"

    def test_callable_prompt(self):
        step = StepSpec("s", prompt=lambda value: f"Keywords: {value['keywords']}")

        assert step.build_prompt({"keywords": ["a"]}) == "Keywords: ['a']"

    def test_no_prompt_uses_input(self):
        assert StepSpec("s").build_prompt("raw") == "raw"
        assert StepSpec("s").build_prompt({"k": 1}) == '{"k": 1}'

    def test_output_of(self):
        assert StepSpec("s").output_of({"text": "t", "usage": None}) == "t"
        assert StepSpec("s", type="structured-data").output_of({"data": [1]}) == [1]
        assert StepSpec("s", type="transform").output_of({"data": 2}) == 2


class TestRunStep:
    """Tests for run_step."""

    @pytest.mark.asyncio
    async def test_text_generation(self, context, provider):
        step = StepSpec("s", prompt="Hi {input}", temperature=0.5, system_prompt="sys")

        result = await run_step(step, "there", context)

        assert result["text"] == "echo: Hi there"
        request = provider.calls[0]
        assert (request.temperature, request.system_prompt, request.model) == (
            0.5,
            "sys",
            "test-model",
        )
        assert context.usage.step_calls == 1

    @pytest.mark.asyncio
    async def test_streaming_tags_chunks(self, context, channel):
        step = StepSpec("s", prompt="a b", stream=True)

        result = await run_step(step, None, context, {"stepNumber": 4})

        chunks = [event.payload for event in channel.events]
        assert [chunk["chunk"] for chunk in chunks] == ["echo:", " a", " b"]
        assert all(chunk["stepNumber"] == 4 for chunk in chunks)
        assert result["text"] == "echo: a b"

    @pytest.mark.asyncio
    async def test_async_transform(self, context, provider):
        async def double(value):
            return value * 2

        result = await run_step(StepSpec("t", type="transform", transformer=double), 21, context)

        assert result == {"data": 42}
        assert provider.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "step",
        [
            StepSpec("t", type="transform"),
            StepSpec("x", type="structured-data"),
            StepSpec("u", type="unknown"),
        ],
    )
    async def test_misconfigured_steps(self, context, step):
        with pytest.raises(ConfigurationError):
            await run_step(step, "input", context)


class TestPatternRun:
    """Tests for the event contract enforced by Pattern.run."""

    @pytest.mark.asyncio
    async def test_success_events_and_result(self, context, channel, kinds):
        result = await EchoPattern().run("hello", context)

        assert kinds() == ["start", "complete"]
        assert channel.events[0].payload == {
            "workflowType": "echo",
            "model": "test-model",
            "inputLength": 5,
        }
        assert channel.events[-1].payload == {"result": {"success": True, "echo": "hello"}}
        assert result.success is True
        assert result.payload == {"success": True, "echo": "hello"}
        assert channel.closed

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error_event(self, context, channel, kinds):
        result = await ExplodingPattern().run("x", context)

        assert kinds() == ["start", "error"]
        assert channel.events[-1].payload == {"error": "RuntimeError: boom"}
        assert result.success is False
        assert result.error == "RuntimeError: boom"
        assert channel.closed

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, context, channel, token):
        token.cancel()

        result = await EchoPattern().run("x", context)

        assert channel.events == ()
        assert result.cancelled is True
        assert result.success is False
        assert channel.closed

    @pytest.mark.asyncio
    async def test_runs_without_channel(self, provider):
        result = await EchoPattern().run("x", ExecutionContext(provider=provider, model="m"))

        assert result.success is True


class TestWorkflowResult:
    """Tests for WorkflowResult.to_dict."""

    def test_success(self):
        result = WorkflowResult(pattern="p", success=True, payload={"success": True})

        assert result.to_dict() == {
            "pattern": "p",
            "success": True,
            "cancelled": False,
            "metadata": {},
            "result": {"success": True},
        }

    def test_failure_includes_diagnostics(self):
        result = WorkflowResult(
            pattern="p", success=False, error="failed", diagnostics={"attempts": 4}
        )

        data = result.to_dict()

        assert data["error"] == "failed"
        assert data["attempts"] == 4
        assert "result" not in data
