"""Server-sent-events wire format for progress streams.

Each event is one record::

    data: {"type": "step-complete", "data": {...}, "timestamp": 1737000000000}

followed by a blank line. The stream ends when the transport closes.
Decoders skip records they cannot parse and keep reading.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from plexus.core.errors import MalformedEventError
from plexus.core.progress import ProgressEvent

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def encode_event(event: ProgressEvent) -> bytes:
    """Encode one event as an SSE ``data:`` record."""
    return f"{DATA_PREFIX}{json.dumps(event.to_dict(), default=str)}\n\n".encode()


def parse_record(line: str) -> ProgressEvent | None:
    """Parse one line of the stream.

    Returns None for blank lines, SSE comments and fields other than
    ``data``.

    Raises:
        MalformedEventError: If a ``data:`` record is not a valid event.
    """
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if not line.startswith("data:"):
        return None

    body = line[len("data:") :].strip()
    try:
        raw = json.loads(body)
    except json.JSONDecodeError as e:
        raise MalformedEventError(f"Invalid JSON in progress record: {e}", body) from e

    if not isinstance(raw, dict):
        raise MalformedEventError("Progress record is not a JSON object", body)

    try:
        return ProgressEvent.from_dict(raw)
    except (KeyError, ValueError, TypeError) as e:
        raise MalformedEventError(f"Invalid progress record: {e}", body) from e


def iter_events(lines: Iterable[str]) -> Iterator[ProgressEvent]:
    """Decode events from text lines, skipping malformed records."""
    for line in lines:
        try:
            event = parse_record(line)
        except MalformedEventError as e:
            logger.warning("Skipping malformed progress record: %s", e)
            continue
        if event is not None:
            yield event


async def aiter_events(chunks: AsyncIterable[bytes]) -> AsyncIterator[ProgressEvent]:
    """Decode events from a byte stream such as ``response.content``.

    Chunks are buffered until a newline, so records split across network
    reads are reassembled before parsing.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    async for chunk in chunks:
        buffer += decoder.decode(chunk)
        *lines, buffer = buffer.split("\n")
        for event in iter_events(lines):
            yield event
    buffer += decoder.decode(b"", final=True)
    if buffer:
        for event in iter_events([buffer]):
            yield event
