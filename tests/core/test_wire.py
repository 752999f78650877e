"""Tests for plexus.core.wire module."""

import json
import logging

import pytest

from plexus.core.errors import MalformedEventError
from plexus.core.progress import EventKind, ProgressEvent
from plexus.core.wire import aiter_events, encode_event, iter_events, parse_record


class TestEncodeEvent:
    """Tests for encode_event."""

    def test_record_shape(self):
        event = ProgressEvent(EventKind.STEP_COMPLETE, {"stepNumber": 1}, 42)

        encoded = encode_event(event)

        assert encoded.startswith(b"data: ")
        assert encoded.endswith(b"\n\n")
        body = json.loads(encoded[len(b"data: ") :].decode())
        assert body == {"type": "step-complete", "data": {"stepNumber": 1}, "timestamp": 42}

    def test_non_ascii_payload(self):
        event = ProgressEvent(EventKind.PROGRESS, {"step": "Traduction en français"}, 1)

        parsed = parse_record(encode_event(event).decode().strip())

        assert parsed == event


class TestParseRecord:
    """Tests for parse_record."""

    @pytest.mark.parametrize("line", ["", "   ", ": keep-alive", "event: message", "id: 3"])
    def test_ignored_lines(self, line):
        assert parse_record(line) is None

    def test_invalid_json(self):
        with pytest.raises(MalformedEventError) as exc_info:
            parse_record("data: {not json")
        assert exc_info.value.record == "{not json"

    def test_not_an_object(self):
        with pytest.raises(MalformedEventError):
            parse_record("data: [1, 2]")

    def test_unknown_type(self):
        with pytest.raises(MalformedEventError):
            parse_record('data: {"type": "mystery", "data": {}}')


class TestIterEvents:
    """Tests for iter_events."""

    def test_skips_malformed_records(self, caplog):
        lines = [
            'data: {"type": "start", "data": {}, "timestamp": 1}',
            "",
            "data: {broken",
            "",
            'data: {"type": "complete", "data": {"result": {}}, "timestamp": 2}',
        ]

        with caplog.at_level(logging.WARNING, logger="plexus.core.wire"):
            events = list(iter_events(lines))

        assert [e.kind for e in events] == [EventKind.START, EventKind.COMPLETE]
        assert "malformed" in caplog.text


class TestAiterEvents:
    """Tests for aiter_events."""

    @pytest.mark.asyncio
    async def test_reassembles_split_records(self):
        payload = b'data: {"type": "progress", "data": {"step": "caf\xc3\xa9"}, "timestamp": 7}\n\n'

        async def chunks():
            # split inside the multi-byte character and inside the JSON body
            yield payload[:20]
            yield payload[20:49]
            yield payload[49:]

        events = [event async for event in aiter_events(chunks())]

        assert len(events) == 1
        assert events[0].payload == {"step": "café"}

    @pytest.mark.asyncio
    async def test_final_record_without_newline(self):
        async def chunks():
            yield b'data: {"type": "start", "data": {}, "timestamp": 1}\n\n'
            yield b'data: {"type": "complete", "data": {}, "timestamp": 2}'

        events = [event async for event in aiter_events(chunks())]

        assert [e.kind for e in events] == [EventKind.START, EventKind.COMPLETE]
