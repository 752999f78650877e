"""Model provider for OpenAI-compatible chat completion APIs.

Works against any endpoint that speaks ``POST {base_url}/chat/completions``
(OpenAI, OpenRouter, vLLM, Ollama, LiteLLM...). Uses aiohttp.

Features:
- Retry with exponential backoff on connection errors and retryable statuses
- Streaming completions parsed from SSE into TextDelta items
- Structured extraction through ``response_format: json_schema``
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import aiohttp

from plexus.core.errors import StepFailure
from plexus.core.steps.base import (
    ExtractRequest,
    ExtractResult,
    TextDelta,
    TextRequest,
    TextResult,
    TextStream,
    Usage,
)

logger = logging.getLogger(__name__)


@dataclass
class OpenAICompatibleConfig:
    """Configuration for OpenAICompatibleProvider."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""

    # Timeouts (seconds)
    connect_timeout: float = 10.0
    read_timeout: float = 300.0

    # Retry configuration
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retryable_status_codes: frozenset[int] = frozenset({429, 500, 502, 503, 504})

    # False for providers that reject stream_options (some local servers)
    supports_stream_usage: bool = True


def _parse_usage(raw: dict[str, Any] | None) -> Usage | None:
    if not raw:
        return None
    return Usage(
        prompt_tokens=int(raw.get("prompt_tokens") or 0),
        completion_tokens=int(raw.get("completion_tokens") or 0),
    )


def _messages(prompt: str, system_prompt: str | None) -> list[dict[str, str]]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages


class OpenAICompatibleProvider:
    """ModelProvider over an OpenAI-compatible HTTP API.

    The aiohttp session is created on first use (or by ``connect()``) and
    shared by every call, so one provider can serve concurrent runs.

    Example:
        >>> async with OpenAICompatibleProvider(config) as provider:
        ...     result = await provider.generate_text(TextRequest("Hi", "gpt-4o-mini"))
    """

    def __init__(self, config: OpenAICompatibleConfig | None = None) -> None:
        self.config = config or OpenAICompatibleConfig()
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> OpenAICompatibleProvider:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._session is not None:
            return
        timeout = aiohttp.ClientTimeout(
            connect=self.config.connect_timeout,
            total=self.config.read_timeout,
        )
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        self._session = aiohttp.ClientSession(headers=headers, timeout=timeout)

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    @property
    def _url(self) -> str:
        return f"{self.config.base_url.rstrip('/')}/chat/completions"

    def _backoff(self, attempt: int) -> float:
        return min(self.config.retry_base_delay * (2**attempt), self.config.retry_max_delay)

    async def _post(self, body: dict[str, Any], trace_id: str) -> dict[str, Any]:
        """POST a non-streaming request with retry.

        Raises:
            StepFailure: On a non-retryable status, or after retries are exhausted.
        """
        await self.connect()
        assert self._session is not None
        last_error: StepFailure | None = None

        for attempt in range(self.config.max_retries + 1):
            try:
                async with self._session.post(self._url, json=body) as response:
                    if response.status == 200:
                        return await response.json(content_type=None)

                    error_body = await response.text()
                    last_error = StepFailure(
                        f"Upstream returned {response.status}",
                        status_code=response.status,
                        response_body=error_body[:2000],
                    )
                    if response.status not in self.config.retryable_status_codes:
                        raise last_error
            except aiohttp.ClientError as e:
                last_error = StepFailure(f"Request failed: {type(e).__name__}: {e}")
                last_error.__cause__ = e

            if attempt < self.config.max_retries:
                delay = self._backoff(attempt)
                logger.warning(
                    "Request %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    trace_id,
                    last_error,
                    delay,
                    attempt + 1,
                    self.config.max_retries,
                )
                await asyncio.sleep(delay)

        assert last_error is not None
        raise last_error

    async def generate_text(self, request: TextRequest) -> TextResult:
        trace_id = f"gen_{int(time.time() * 1000)}"
        body: dict[str, Any] = {
            "model": request.model,
            "messages": _messages(request.prompt, request.system_prompt),
            "stream": False,
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens

        data = await self._post(body, trace_id)
        try:
            choice = data["choices"][0]
            text = choice["message"].get("content") or ""
        except (KeyError, IndexError, TypeError) as e:
            raise StepFailure(f"Unexpected completion response: {e}") from e

        return TextResult(
            text=text,
            model=data.get("model", request.model),
            usage=_parse_usage(data.get("usage")),
            finish_reason=choice.get("finish_reason"),
        )

    def stream_text(self, request: TextRequest) -> TextStream:
        body: dict[str, Any] = {
            "model": request.model,
            "messages": _messages(request.prompt, request.system_prompt),
            "stream": True,
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if self.config.supports_stream_usage:
            body["stream_options"] = {"include_usage": True}
        return TextStream(source=self._stream_deltas(body), model=request.model)

    async def _stream_deltas(self, body: dict[str, Any]) -> AsyncIterator[TextDelta]:
        """Yield deltas from a streaming completion.

        Only the initial connection is retried; once bytes have been
        delivered a failure is raised as StepFailure.
        """
        trace_id = f"stream_{int(time.time() * 1000)}"
        await self.connect()
        assert self._session is not None
        last_error: StepFailure | None = None

        for attempt in range(self.config.max_retries + 1):
            try:
                async with self._session.post(self._url, json=body) as response:
                    if response.status != 200:
                        error_body = await response.text()
                        last_error = StepFailure(
                            f"Upstream returned {response.status}",
                            status_code=response.status,
                            response_body=error_body[:2000],
                        )
                        if response.status not in self.config.retryable_status_codes:
                            raise last_error
                    else:
                        logger.debug("[%s] Starting to receive SSE stream", trace_id)
                        async for line in response.content:
                            delta = self._parse_stream_line(line.decode("utf-8").strip())
                            if delta is not None:
                                yield delta
                        return
            except aiohttp.ClientError as e:
                last_error = StepFailure(f"Stream failed: {type(e).__name__}: {e}")
                last_error.__cause__ = e

            if attempt < self.config.max_retries:
                delay = self._backoff(attempt)
                logger.warning(
                    "Stream %s failed (%s), retrying in %.1fs", trace_id, last_error, delay
                )
                await asyncio.sleep(delay)

        assert last_error is not None
        raise last_error

    @staticmethod
    def _parse_stream_line(line: str) -> TextDelta | None:
        if not line.startswith("data:"):
            return None
        data_str = line[len("data:") :].strip()
        if data_str == "[DONE]":
            return None
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            logger.debug("Ignoring unparseable stream line: %s", data_str[:200])
            return None

        usage = _parse_usage(data.get("usage"))
        choices = data.get("choices") or []
        if not choices:
            return TextDelta(usage=usage) if usage else None

        choice = choices[0]
        content = (choice.get("delta") or {}).get("content") or ""
        return TextDelta(text=content, usage=usage, finish_reason=choice.get("finish_reason"))

    async def extract_structured(self, request: ExtractRequest) -> ExtractResult:
        trace_id = f"extract_{int(time.time() * 1000)}"
        body: dict[str, Any] = {
            "model": request.model,
            "messages": _messages(request.prompt, request.system_prompt),
            "stream": False,
            "response_format": {
                "type": "json_schema",
                "json_schema": {"name": request.schema_name, "schema": request.json_schema()},
            },
        }
        if request.temperature is not None:
            body["temperature"] = request.temperature

        data = await self._post(body, trace_id)
        try:
            content = data["choices"][0]["message"].get("content") or ""
        except (KeyError, IndexError, TypeError) as e:
            raise StepFailure(f"Unexpected completion response: {e}") from e

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            raise StepFailure(f"Provider returned invalid JSON: {e}") from e

        return ExtractResult(
            data=request.validate(parsed),
            model=data.get("model", request.model),
            usage=_parse_usage(data.get("usage")),
        )
