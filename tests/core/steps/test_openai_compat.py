"""Tests for OpenAICompatibleProvider."""

import json

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses

from plexus.core.errors import StepFailure
from plexus.core.steps import (
    ExtractRequest,
    OpenAICompatibleConfig,
    OpenAICompatibleProvider,
    TextRequest,
    Usage,
)

BASE_URL = "https://llm.test/v1"
URL_COMPLETIONS = f"{BASE_URL}/chat/completions"


@pytest_asyncio.fixture
async def llm():
    """Provider with fast retries."""
    provider = OpenAICompatibleProvider(
        OpenAICompatibleConfig(
            base_url=BASE_URL + "/",
            api_key="test-key",
            max_retries=2,
            retry_base_delay=0.0,
        )
    )
    yield provider
    await provider.close()


def make_completion(content: str = "Hello!", model: str = "test-model"):
    """Create a mock chat completion response."""
    return {
        "id": "cmpl-1",
        "model": model,
        "choices": [
            {"finish_reason": "stop", "message": {"role": "assistant", "content": content}}
        ],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def sse_body(*chunks) -> bytes:
    lines = [f"data: {json.dumps(chunk)}\n\n" for chunk in chunks]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def sent_bodies(mocked):
    return [call.kwargs["json"] for calls in mocked.requests.values() for call in calls]


class TestGenerateText:
    """Tests for non-streaming completions."""

    @pytest.mark.asyncio
    async def test_success(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, payload=make_completion("4"))

            result = await llm.generate_text(
                TextRequest("What is 2+2?", "test-model", temperature=0.2, system_prompt="Be brief")
            )

            body = sent_bodies(m)[0]

        assert result.text == "4"
        assert result.usage == Usage(10, 5)
        assert result.finish_reason == "stop"
        assert body["model"] == "test-model"
        assert body["temperature"] == 0.2
        assert body["stream"] is False
        assert body["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "What is 2+2?"},
        ]

    @pytest.mark.asyncio
    async def test_retries_retryable_status(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, status=503, body="busy")
            m.post(URL_COMPLETIONS, payload=make_completion("after retry"))

            result = await llm.generate_text(TextRequest("hi", "test-model"))

            assert len(sent_bodies(m)) == 2
        assert result.text == "after retry"

    @pytest.mark.asyncio
    async def test_non_retryable_status_fails_immediately(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, status=400, body="bad request")

            with pytest.raises(StepFailure) as exc_info:
                await llm.generate_text(TextRequest("hi", "test-model"))

            assert len(sent_bodies(m)) == 1
        assert exc_info.value.status_code == 400
        assert exc_info.value.response_body == "bad request"

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, status=500, body="err", repeat=True)

            with pytest.raises(StepFailure) as exc_info:
                await llm.generate_text(TextRequest("hi", "test-model"))

            assert len(sent_bodies(m)) == 3
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_connection_error(self, llm):
        with aioresponses() as m:
            m.post(
                URL_COMPLETIONS,
                exception=aiohttp.ClientConnectionError("refused"),
                repeat=True,
            )

            with pytest.raises(StepFailure, match="Request failed"):
                await llm.generate_text(TextRequest("hi", "test-model"))

    @pytest.mark.asyncio
    async def test_malformed_response(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, payload={"choices": []})

            with pytest.raises(StepFailure, match="Unexpected completion response"):
                await llm.generate_text(TextRequest("hi", "test-model"))


class TestStreamText:
    """Tests for streaming completions."""

    @pytest.mark.asyncio
    async def test_stream_deltas_and_usage(self, llm):
        body = sse_body(
            {"choices": [{"delta": {"content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
            {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2}},
        )
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, status=200, body=body)

            stream = llm.stream_text(TextRequest("hi", "test-model"))
            pieces = [piece async for piece in stream]

            sent = sent_bodies(m)[0]

        assert pieces == ["Hel", "lo"]
        assert stream.result.text == "Hello"
        assert stream.result.usage == Usage(3, 2)
        assert sent["stream"] is True
        assert sent["stream_options"] == {"include_usage": True}

    @pytest.mark.asyncio
    async def test_stream_usage_option_disabled(self):
        provider = OpenAICompatibleProvider(
            OpenAICompatibleConfig(base_url=BASE_URL, supports_stream_usage=False)
        )
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, status=200, body=sse_body())

            result = await provider.stream_text(TextRequest("hi", "test-model")).collect()

            sent = sent_bodies(m)[0]
        await provider.close()

        assert result.text == ""
        assert "stream_options" not in sent

    @pytest.mark.asyncio
    async def test_stream_error_status(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, status=401, body="unauthorized")

            with pytest.raises(StepFailure) as exc_info:
                await llm.stream_text(TextRequest("hi", "test-model")).collect()

        assert exc_info.value.status_code == 401

    def test_parse_stream_line(self):
        parse = OpenAICompatibleProvider._parse_stream_line

        assert parse(": keepalive") is None
        assert parse("data: [DONE]") is None
        assert parse("data: {not json") is None
        assert parse('data: {"choices": [{"delta": {"content": "x"}}]}').text == "x"


class TestExtractStructured:
    """Tests for structured extraction."""

    @pytest.mark.asyncio
    async def test_extract(self, llm):
        schema = {"type": "object", "required": ["keywords"]}
        content = json.dumps({"keywords": ["a", "b"]})
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, payload=make_completion(content))

            result = await llm.extract_structured(
                ExtractRequest("text", "test-model", schema=schema, schema_name="keywords")
            )

            sent = sent_bodies(m)[0]

        assert result.data == {"keywords": ["a", "b"]}
        assert result.usage.total_tokens == 15
        assert sent["response_format"] == {
            "type": "json_schema",
            "json_schema": {"name": "keywords", "schema": schema},
        }

    @pytest.mark.asyncio
    async def test_invalid_json(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, payload=make_completion("not json"))

            with pytest.raises(StepFailure, match="invalid JSON"):
                await llm.extract_structured(
                    ExtractRequest("text", "test-model", schema={"type": "object"})
                )

    @pytest.mark.asyncio
    async def test_schema_violation(self, llm):
        with aioresponses() as m:
            m.post(URL_COMPLETIONS, payload=make_completion('{"other": 1}'))

            with pytest.raises(StepFailure, match="missing required"):
                await llm.extract_structured(
                    ExtractRequest(
                        "text", "test-model", schema={"type": "object", "required": ["k"]}
                    )
                )
