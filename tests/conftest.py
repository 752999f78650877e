"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web

from plexus.config import PlexusConfig
from plexus.core.cancellation import CancellationToken
from plexus.core.context import ExecutionContext
from plexus.core.errors import StepFailure
from plexus.core.progress import ProgressChannel
from plexus.core.steps.base import (
    ExtractRequest,
    ExtractResult,
    TextDelta,
    TextRequest,
    TextResult,
    TextStream,
    Usage,
)
from plexus.core.store import MemoryStore
from plexus.server.app import create_app

TEST_MODEL = "test-model"


class FakeProvider:
    """Scriptable ModelProvider.

    Args:
        text: Maps a TextRequest to the generated text (default: echo the prompt).
        data: Maps an ExtractRequest to the extracted data.
        failures: Number of initial calls that raise StepFailure.
        fail_when: Requests for which the call raises StepFailure.
        delay: Seconds to wait before answering, or a function of the request.
    """

    def __init__(
        self,
        text: Callable[[TextRequest], str] | None = None,
        data: Callable[[ExtractRequest], Any] | None = None,
        failures: int = 0,
        fail_when: Callable[[Any], bool] | None = None,
        delay: float | Callable[[Any], float] = 0.0,
    ) -> None:
        self.text = text or (lambda request: f"echo: {request.prompt}")
        self.data = data or (lambda request: {"keywords": ["alpha", "beta"], "category": "test"})
        self.failures = failures
        self.fail_when = fail_when
        self.delay = delay
        self.calls: list[TextRequest | ExtractRequest] = []
        self.closed = False

    @property
    def prompts(self) -> list[str]:
        return [call.prompt for call in self.calls]

    async def _before(self, request: TextRequest | ExtractRequest) -> None:
        self.calls.append(request)
        delay = self.delay(request) if callable(self.delay) else self.delay
        if delay:
            await asyncio.sleep(delay)
        if self.failures > 0:
            self.failures -= 1
            raise StepFailure("provider unavailable", status_code=503)
        if self.fail_when is not None and self.fail_when(request):
            raise StepFailure(f"failed on: {request.prompt}", status_code=500)

    async def generate_text(self, request: TextRequest) -> TextResult:
        await self._before(request)
        return TextResult(
            text=self.text(request), model=request.model, usage=Usage(10, 5), finish_reason="stop"
        )

    def stream_text(self, request: TextRequest) -> TextStream:
        async def deltas() -> AsyncIterator[TextDelta]:
            await self._before(request)
            words = self.text(request).split(" ")
            for index, word in enumerate(words):
                yield TextDelta(text=word if index == 0 else f" {word}")
            yield TextDelta(usage=Usage(10, 5), finish_reason="stop")

        return TextStream(deltas(), request.model)

    async def extract_structured(self, request: ExtractRequest) -> ExtractResult:
        await self._before(request)
        return ExtractResult(
            data=request.validate(self.data(request)), model=request.model, usage=Usage(20, 8)
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    """Factory for FakeProvider instances."""
    return FakeProvider


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def channel() -> ProgressChannel:
    return ProgressChannel()


@pytest.fixture
def token() -> CancellationToken:
    return CancellationToken()


@pytest.fixture
def context(
    provider: FakeProvider, channel: ProgressChannel, token: CancellationToken
) -> ExecutionContext:
    return ExecutionContext(
        provider=provider,
        channel=channel,
        cancellation=token,
        store=MemoryStore(),
        model=TEST_MODEL,
    )


@pytest.fixture
def kinds(channel: ProgressChannel) -> Callable[[], list[str]]:
    """Kinds of the events emitted on the channel so far."""
    return lambda: [event.kind.value for event in channel.events]


@pytest_asyncio.fixture
async def start_server():
    """Start plexus servers on free ports; returns their base URLs.

    Usage: ``base_url = await start_server(provider)``. Every server is
    cleaned up after the test.
    """
    runners: list[web.AppRunner] = []

    async def start(provider: FakeProvider, **config: Any) -> str:
        app = create_app(PlexusConfig(model=TEST_MODEL, **config), provider=provider)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "127.0.0.1", 0)
        await site.start()
        runners.append(runner)
        host, port = runner.addresses[0][:2]
        return f"http://{host}:{port}"

    yield start

    for runner in runners:
        await runner.cleanup()
