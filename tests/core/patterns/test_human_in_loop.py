"""Tests for HumanInLoopPattern."""

import asyncio

import pytest

from plexus.core.approvals import ApprovalDecision, ApprovalInbox
from plexus.core.patterns import HumanInLoopConfig, HumanInLoopPattern, StepSpec


def decisions(*items):
    """Approval source yielding ``items``; records the run ids it was asked for."""
    asked = []

    async def source(run_id):
        asked.append(run_id)
        for item in items:
            yield item

    source.asked = asked
    return source


async def wait_until_pending(inbox):
    while not inbox.pending():
        await asyncio.sleep(0.001)


class TestHumanInLoopPattern:
    """Tests for the human-in-loop pattern."""

    @pytest.mark.asyncio
    async def test_approve_returns_draft(self, context, channel, provider, kinds):
        source = decisions(ApprovalDecision(action="approve", feedback="ship it"))
        pattern = HumanInLoopPattern(HumanInLoopConfig(approvals=source))

        result = await pattern.run("Draft a tagline", context)

        assert kinds() == [
            "start",
            "progress",
            "step-complete",
            "progress",
            "progress",
            "complete",
        ]
        waiting = channel.events[3].payload
        assert waiting["awaitingApproval"] is True
        assert waiting["runId"] == context.run_id
        assert source.asked == [context.run_id]
        assert channel.events[4].payload["action"] == "approve"
        assert provider.prompts == ["Draft a tagline"]
        assert provider.calls[0].temperature == 0.7
        assert result.success is True
        assert result.payload["approved"] is True
        assert result.payload["revised"] is False
        assert result.payload["feedback"] == "ship it"
        assert result.payload["result"]["text"] == "echo: Draft a tagline"

    @pytest.mark.asyncio
    async def test_revise_uses_feedback_and_draft(self, context, provider, kinds):
        source = decisions(ApprovalDecision(action="revise", feedback="shorter"))
        pattern = HumanInLoopPattern(HumanInLoopConfig(approvals=source))

        result = await pattern.run("Draft a tagline", context)

        assert kinds()[-3:] == ["progress", "step-complete", "complete"]
        assert provider.prompts[1] == (
            'Revise the following based on feedback: "shorter"\n\n'
            "Original: echo: Draft a tagline"
        )
        assert result.payload["revised"] is True
        assert result.payload["result"]["text"] == f"echo: {provider.prompts[1]}"
        assert result.metadata["stepCalls"] == 2

    @pytest.mark.asyncio
    async def test_revision_inherits_task_model(self, context, provider):
        config = HumanInLoopConfig(
            task=StepSpec("draft", model="draft-model"),
            approvals=decisions(ApprovalDecision(action="revise")),
        )

        await HumanInLoopPattern(config).run("text", context)

        assert [call.model for call in provider.calls] == ["draft-model", "draft-model"]
        assert provider.prompts[1].startswith('Revise the following based on feedback: ""')

    @pytest.mark.asyncio
    async def test_reject_fails_with_draft(self, context, channel, provider, kinds):
        source = decisions(ApprovalDecision(action="reject", feedback="off-brand"))
        pattern = HumanInLoopPattern(HumanInLoopConfig(approvals=source))

        result = await pattern.run("Draft a tagline", context)

        assert kinds()[-1] == "error"
        assert result.success is False
        assert result.error == "Rejected by reviewer: off-brand"
        error = channel.events[-1].payload
        assert error["step"] == "approval"
        assert error["approved"] is False
        assert error["feedback"] == "off-brand"
        assert error["result"]["text"] == "echo: Draft a tagline"
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_source_without_decision(self, context):
        pattern = HumanInLoopPattern(HumanInLoopConfig(approvals=decisions()))

        result = await pattern.run("text", context)

        assert result.success is False
        assert result.error == "Approval source ended without a decision"

    @pytest.mark.asyncio
    async def test_needs_approval_source(self, context, provider, kinds):
        result = await HumanInLoopPattern().run("text", context)

        assert kinds() == ["start", "error"]
        assert "approval source" in result.error
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_inbox_from_context(self, context):
        inbox = ApprovalInbox()
        context.approvals = inbox

        task = asyncio.create_task(HumanInLoopPattern().run("text", context))
        await asyncio.wait_for(wait_until_pending(inbox), timeout=1.0)
        assert inbox.pending() == [context.run_id]
        inbox.submit(context.run_id, ApprovalDecision(action="approve"))
        result = await asyncio.wait_for(task, timeout=1.0)

        assert result.success is True
        assert inbox.pending() == []

    @pytest.mark.asyncio
    async def test_config_source_wins_over_context(self, context):
        context.approvals = ApprovalInbox()
        source = decisions(ApprovalDecision(action="approve"))

        result = await HumanInLoopPattern(HumanInLoopConfig(approvals=source)).run("x", context)

        assert result.success is True
        assert source.asked == [context.run_id]

    @pytest.mark.asyncio
    async def test_cancelled_while_waiting(self, context, token, provider, kinds):
        inbox = ApprovalInbox()
        context.approvals = inbox

        task = asyncio.create_task(HumanInLoopPattern().run("text", context))
        await asyncio.wait_for(wait_until_pending(inbox), timeout=1.0)
        token.cancel()
        result = await asyncio.wait_for(task, timeout=1.0)

        assert result.cancelled is True
        assert kinds()[-1] == "progress"
        assert "complete" not in kinds()
        assert "error" not in kinds()
        assert inbox.pending() == []
        assert len(provider.calls) == 1
