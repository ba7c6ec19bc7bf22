"""Shared test utilities and fixtures for relay tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime, timedelta

import pytest

from kai_relay.agents.base import GenerationOptions
from kai_relay.api.schemas.conversation import Message
from kai_relay.core.settings import Settings
from kai_relay.services.chat_stream import decode_sse_line
from kai_relay.services.conversation_gate import ConversationGate
from kai_relay.services.conversation_store import InMemoryConversationStore
from kai_relay.services.stream_relay import StreamRelay


class FakeTokenSource:
    """Scripted token source standing in for the model backend.

    ``fail_at`` raises after that many fragments of a response were produced.
    """

    def __init__(self, responses: list[list[str]], *, fail_at: int | None = None) -> None:
        self._responses = responses
        self._next_index = 0
        self.fail_at = fail_at
        self.calls: list[tuple[list[Message], GenerationOptions]] = []
        self.closed_streams = 0

    async def stream(self, messages: Sequence[Message], options: GenerationOptions) -> AsyncIterator[str]:
        self.calls.append((list(messages), options))
        response = self._responses[self._next_index]
        self._next_index = (self._next_index + 1) % len(self._responses)
        try:
            for index, fragment in enumerate(response):
                if self.fail_at == index:
                    raise RuntimeError("upstream model failure: connection refused on 11434")
                yield fragment
            if self.fail_at is not None and self.fail_at >= len(response):
                raise RuntimeError("upstream model failure: connection refused on 11434")
        finally:
            self.closed_streams += 1


class StepClock:
    """Deterministic clock advancing one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self._current += timedelta(seconds=1)
        return self._current


def parse_sse_body(body: str) -> list[dict]:
    events = []
    for line in body.splitlines():
        payload = decode_sse_line(line)
        if payload is not None:
            events.append(payload)
    return events


@pytest.fixture
def test_settings() -> Settings:
    return Settings()


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(step_clock: StepClock) -> InMemoryConversationStore:
    return InMemoryConversationStore(clock=step_clock)


@pytest.fixture
def gate() -> ConversationGate:
    return ConversationGate()


def build_relay(source: FakeTokenSource) -> StreamRelay:
    return StreamRelay(source)  # type: ignore[arg-type]
