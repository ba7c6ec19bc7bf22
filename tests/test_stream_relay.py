"""Unit tests for relay event ordering and failure handling."""

from __future__ import annotations

from functools import partial

import pytest

from kai_relay.agents.base import GenerationOptions
from kai_relay.api.schemas.conversation import Message
from kai_relay.services.chat_stream import is_final_event
from kai_relay.services.sanitizer import clean_title
from kai_relay.services.stream_relay import CHAT_STREAM_ERROR, TITLE_STREAM_ERROR, StreamSession
from tests.conftest import FakeTokenSource, build_relay

OPTIONS = GenerationOptions(temperature=0.8, max_tokens=4000)
HISTORY = [Message(role="user", content="Hello")]


async def _collect(relay, session: StreamSession) -> list[dict]:
    return [event async for event in relay.run(session, HISTORY, OPTIONS)]


@pytest.mark.asyncio
async def test_relay_forwards_raw_fragments_then_sanitized_terminal() -> None:
    source = FakeTokenSource([["Hel", "lo<|end|>"]])
    session = StreamSession(kind="chat", conversation_id="c1")

    events = await _collect(build_relay(source), session)

    assert events == [
        {"content": "Hel"},
        {"content": "lo<|end|>"},
        {"done": True, "fullResponse": "Hello"},
    ]
    assert session.accumulated == "Hello<|end|>"
    assert session.result == "Hello"
    assert source.calls == [(HISTORY, OPTIONS)]


@pytest.mark.asyncio
async def test_relay_error_before_first_fragment_emits_single_generic_error() -> None:
    source = FakeTokenSource([["never"]], fail_at=0)
    session = StreamSession(kind="chat", conversation_id="c1")

    events = await _collect(build_relay(source), session)

    assert events == [{"error": CHAT_STREAM_ERROR}]
    assert "11434" not in events[0]["error"]
    assert session.failed is True
    assert session.result is None


@pytest.mark.asyncio
async def test_relay_error_mid_stream_keeps_fragments_then_one_error() -> None:
    source = FakeTokenSource([["a", "b", "c"]], fail_at=2)
    session = StreamSession(kind="chat")

    events = await _collect(build_relay(source), session)

    assert events == [{"content": "a"}, {"content": "b"}, {"error": CHAT_STREAM_ERROR}]
    assert sum(1 for event in events if is_final_event(event)) == 1
    assert is_final_event(events[-1])
    assert session.fragments == []


@pytest.mark.asyncio
async def test_relay_empty_stream_still_emits_terminal() -> None:
    session = StreamSession(kind="chat")

    events = await _collect(build_relay(FakeTokenSource([[]])), session)

    assert events == [{"done": True, "fullResponse": ""}]
    assert session.completed is True


@pytest.mark.asyncio
async def test_title_session_uses_title_terminal_and_post_processing() -> None:
    source = FakeTokenSource([['"Greeting', " Exchange.", '"']])
    session = StreamSession(kind="title", finalize=partial(clean_title, max_length=50))

    events = await _collect(build_relay(source), session)

    assert events[-1] == {"done": True, "title": "Greeting Exchange"}
    failing = StreamSession(kind="title")
    assert await _collect(build_relay(FakeTokenSource([["x"]], fail_at=0)), failing) == [
        {"error": TITLE_STREAM_ERROR}
    ]


@pytest.mark.asyncio
async def test_consumer_closing_early_aborts_source_and_discards_accumulation() -> None:
    source = FakeTokenSource([["a", "b", "c"]])
    session = StreamSession(kind="chat", conversation_id="c1")
    events = build_relay(source).run(session, HISTORY, OPTIONS)

    first = await events.__anext__()
    await events.aclose()

    assert first == {"content": "a"}
    assert source.closed_streams == 1
    assert session.fragments == []
    assert session.completed is False


class RefusingTokenSource:
    """Source whose connection fails before any iterator is handed out."""

    def __init__(self) -> None:
        self.calls = 0

    def stream(self, messages, options):
        self.calls += 1
        raise ConnectionError("connect to 11434 refused")


@pytest.mark.asyncio
async def test_relay_reports_source_that_fails_to_open() -> None:
    source = RefusingTokenSource()
    session = StreamSession(kind="chat", conversation_id="c1")

    events = await _collect(build_relay(source), session)  # type: ignore[arg-type]

    assert events == [{"error": CHAT_STREAM_ERROR}]
    assert source.calls == 1
    assert session.failed is True
    assert session.completed is False
