"""Python SDK client for a running plexus server."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from plexus.core.errors import PlexusError
from plexus.core.progress import EventKind, ProgressEvent
from plexus.core.wire import aiter_events

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """Everything a finished run reported.

    Attributes:
        events: Events in the order received.
        result: Payload of the ``complete`` event, if any.
        error: Payload of the ``error`` event, if any.
    """

    events: list[ProgressEvent] = field(default_factory=list)
    result: dict[str, Any] | None = None
    error: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.result is not None and self.error is None

    @property
    def terminated(self) -> bool:
        """True when a terminal event arrived before the stream ended."""
        return self.result is not None or self.error is not None


@dataclass
class PlexusClient:
    """Client for the plexus HTTP API.

    Example:
        >>> async with PlexusClient("http://127.0.0.1:8100") as client:
        ...     async for event in client.stream("sequential", "Some long text..."):
        ...         print(event.kind, event.payload)
    """

    base_url: str = "http://127.0.0.1:8100"
    timeout: float = 600.0
    _session: aiohttp.ClientSession | None = field(default=None, repr=False)

    async def __aenter__(self) -> PlexusClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            logger.debug("Plexus client connected to %s", self.base_url)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("Not connected")
        return self._session

    async def stream(
        self, pattern: str, input: Any, model: str | None = None
    ) -> AsyncIterator[ProgressEvent]:
        """Run a pattern on the server and yield its events as they arrive.

        Leaving the loop early closes the connection, which cancels the run
        on the server.

        Raises:
            PlexusError: If the server rejects the request.
        """
        body: dict[str, Any] = {"patternName": pattern, "input": input}
        if model:
            body["model"] = model

        session = self._require_session()
        async with session.post(self._url("/api/workflows/execute"), json=body) as response:
            if response.status != 200:
                raise PlexusError(
                    f"Server rejected run ({response.status}): {await response.text()}"
                )
            async for event in aiter_events(response.content.iter_any()):
                yield event

    async def run(self, pattern: str, input: Any, model: str | None = None) -> RunOutcome:
        """Run a pattern and collect every event until the stream ends."""
        outcome = RunOutcome()
        async for event in self.stream(pattern, input, model):
            outcome.events.append(event)
            if event.kind == EventKind.COMPLETE:
                outcome.result = event.payload.get("result", event.payload)
            elif event.kind == EventKind.ERROR:
                outcome.error = dict(event.payload)
        return outcome

    async def patterns(self) -> list[dict[str, str]]:
        session = self._require_session()
        async with session.get(self._url("/api/workflows/patterns")) as response:
            response.raise_for_status()
            data = await response.json()
        return data["patterns"]

    async def health(self) -> dict[str, Any]:
        session = self._require_session()
        async with session.get(self._url("/health")) as response:
            response.raise_for_status()
            return await response.json()

    async def pending_approvals(self) -> list[str]:
        """Run ids waiting for a reviewer."""
        session = self._require_session()
        async with session.get(self._url("/api/workflows/approvals")) as response:
            response.raise_for_status()
            data = await response.json()
        return data["pending"]

    async def approve(self, run_id: str, action: str, feedback: str | None = None) -> None:
        """Answer a run paused on a reviewer with ``approve``, ``revise`` or ``reject``.

        Raises:
            PlexusError: If the server refuses the decision, for example
                because no run is waiting under ``run_id``.
        """
        body: dict[str, Any] = {"action": action}
        if feedback is not None:
            body["feedback"] = feedback

        session = self._require_session()
        url = self._url(f"/api/workflows/approvals/{run_id}")
        async with session.post(url, json=body) as response:
            if response.status != 202:
                raise PlexusError(
                    f"Server rejected decision ({response.status}): {await response.text()}"
                )
