"""Tests for SSE parsing and framing."""

import json

import pytest

from app.modules.rag.schemas import AnswerEvent, StatusEvent
from app.modules.rag.sse import DONE_FRAME, format_sse, iter_sse_events


async def lines_of(*lines):
    for line in lines:
        yield line


async def collect(lines):
    return [event async for event in iter_sse_events(lines)]


@pytest.mark.asyncio
async def test_event_type_applies_to_next_data_line_only():
    events = await collect(lines_of(
        "event: answer",
        'data: {"answer": "Hello"}',
        "",
        'data: {"answer": " world"}',
    ))
    assert events == [("answer", {"answer": "Hello"}), (None, {"answer": " world"})]


@pytest.mark.asyncio
async def test_malformed_and_done_lines_are_skipped():
    events = await collect(lines_of(
        "data: not json",
        "data: [DONE]",
        ": keep-alive comment",
        "event: status",
        'data: {"node": "search"}',
    ))
    assert events == [("status", {"node": "search"})]


@pytest.mark.asyncio
async def test_carriage_returns_are_tolerated():
    events = await collect(lines_of("event: complete\r", 'data: {"request_id": "r1"}\r'))
    assert events == [("complete", {"request_id": "r1"})]


def test_format_sse_uses_camel_case_and_drops_none():
    frame = format_sse(StatusEvent(message="Starting query..."))
    assert frame == 'data: {"type": "status", "message": "Starting query..."}\n\n'


def test_format_sse_accepts_plain_dicts():
    frame = format_sse({"type": "error", "error": "STREAM_ERROR", "message": "boom"})
    assert json.loads(frame[len("data: "):]) == {"type": "error", "error": "STREAM_ERROR", "message": "boom"}
    assert format_sse(AnswerEvent(content="x")).endswith("\n\n")


def test_done_frame():
    assert DONE_FRAME == "data: [DONE]\n\n"
