"""Tests for the client chat session against scripted and in-process relays."""

from __future__ import annotations

import json

import httpx
import pytest

from kai_relay.client.blob_store import InMemoryBlobStore
from kai_relay.client.cache import CONNECTION_ERROR, ClientCache
from kai_relay.client.relay_client import RelayClient
from kai_relay.client.session import ChatSession
from kai_relay.core.settings import Settings
from kai_relay.dependency_injection import build_container, register_token_source
from kai_relay.main import app
from kai_relay.services.chat_stream import encode_sse_event, error_event, fragment_event, terminal_event
from tests.conftest import FakeTokenSource, StepClock


def _sse(*events: dict) -> bytes:
    return "".join(encode_sse_event(event) for event in events).encode("utf-8")  # type: ignore[arg-type]


def _conversation_json(conversation_id: str, title: str) -> dict:
    return {
        "id": conversation_id,
        "title": title,
        "messages": [],
        "createdAt": "2026-01-01T00:00:00Z",
        "updatedAt": "2026-01-01T00:00:00Z",
    }


class ScriptedRelay:
    """httpx handler replaying canned SSE bodies per endpoint and recording requests."""

    def __init__(self, chat_body: bytes, title_body: bytes | None = None) -> None:
        self.chat_body = chat_body
        self.title_body = title_body or _sse(terminal_event("title", "Greeting Exchange"))
        self.requests: list[tuple[str, str, dict | None]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        if request.url.path == "/api/chat":
            return httpx.Response(200, content=self.chat_body, headers={"content-type": "text/event-stream"})
        if request.url.path == "/api/generate-title":
            return httpx.Response(200, content=self.title_body, headers={"content-type": "text/event-stream"})
        if request.method == "PATCH":
            return httpx.Response(404, json={"detail": "conversation not found"})
        if request.method == "DELETE":
            return httpx.Response(200, json={"success": True})
        return httpx.Response(200, json=_conversation_json(body["conversationId"], "New conversation"))


async def _session(handler: ScriptedRelay) -> ChatSession:
    cache = ClientCache(InMemoryBlobStore(), clock=StepClock(), id_factory=lambda: "conv_1")
    await cache.restore()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://relay.test")
    return ChatSession(cache=cache, client=RelayClient("http://relay.test", http_client=http_client))


@pytest.mark.asyncio
async def test_send_commits_reply_and_applies_inferred_title() -> None:
    handler = ScriptedRelay(
        _sse(fragment_event("Hel"), fragment_event("lo<|end|>"), terminal_event("chat", "Hello")),
    )
    session = await _session(handler)

    reply = await session.send("  Hi  ")
    await session.wait_for_titles()

    conversation = session.cache.get("conv_1")
    assert reply.rendered == "Hello"
    assert [(m.role, m.content) for m in conversation.messages] == [("user", "Hi"), ("assistant", "Hello")]
    assert conversation.title == "Greeting Exchange"
    assert ("POST", "/api/chat", {"message": "Hi", "conversationId": "conv_1"}) in handler.requests
    assert ("POST", "/api/generate-title", {"message": "Hi", "conversationId": "conv_1"}) in handler.requests
    await session.aclose()


@pytest.mark.asyncio
async def test_stream_closed_without_terminal_renders_connection_error() -> None:
    session = await _session(ScriptedRelay(_sse(fragment_event("partial"))))

    reply = await session.send("Hi")
    await session.wait_for_titles()

    assert reply.rendered == f"Error: {CONNECTION_ERROR}"
    assert [m.role for m in session.cache.get("conv_1").messages] == ["user"]
    await session.aclose()


@pytest.mark.asyncio
async def test_relay_error_event_is_rendered_and_skips_title() -> None:
    handler = ScriptedRelay(_sse(fragment_event("par"), error_event("Assistant stream failed")))
    session = await _session(handler)

    reply = await session.send("Hi")
    await session.wait_for_titles()

    assert reply.rendered == "Error: Assistant stream failed"
    assert session.cache.get("conv_1").title == "New conversation"
    assert all(path != "/api/generate-title" for _, path, _ in handler.requests)
    await session.aclose()


@pytest.mark.asyncio
async def test_transport_failure_is_reported_as_connection_error() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    cache = ClientCache(InMemoryBlobStore(), clock=StepClock(), id_factory=lambda: "conv_1")
    await cache.restore()
    client = RelayClient(
        "http://relay.test",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://relay.test"),
    )
    session = ChatSession(cache=cache, client=client)

    reply = await session.send("Hi")

    assert reply.status == "failed"
    assert reply.error == CONNECTION_ERROR
    assert [m.content for m in cache.get("conv_1").messages] == ["Hi"]
    await session.aclose()


@pytest.mark.asyncio
async def test_blank_message_is_rejected_before_any_request() -> None:
    handler = ScriptedRelay(_sse(terminal_event("chat", "unused")))
    session = await _session(handler)

    with pytest.raises(ValueError):
        await session.send("   ")

    assert handler.requests == []
    await session.aclose()


@pytest.mark.asyncio
async def test_title_error_leaves_default_title() -> None:
    handler = ScriptedRelay(
        _sse(terminal_event("chat", "Hello")),
        title_body=_sse(error_event("Title generation failed")),
    )
    session = await _session(handler)

    await session.send("Hi")
    await session.wait_for_titles()

    assert session.cache.get("conv_1").title == "New conversation"
    await session.aclose()


@pytest.mark.asyncio
async def test_local_rename_survives_missing_server_copy_and_delete_mirrors() -> None:
    handler = ScriptedRelay(_sse(terminal_event("chat", "unused")))
    session = await _session(handler)

    await session.rename("conv_1", "Trip")
    await session.delete("conv_1")

    assert ("PATCH", "/api/conversation/conv_1", {"title": "Trip"}) in handler.requests
    assert ("DELETE", "/api/conversation/conv_1", None) in handler.requests
    assert session.cache.current_id == "conv_1"
    assert session.cache.get("conv_1").title == "New conversation"
    await session.aclose()


@pytest.mark.asyncio
async def test_session_round_trip_through_in_process_relay() -> None:
    source = FakeTokenSource([["Hel", "lo"], ['"Greeting', ' Exchange."']])
    container = build_container(Settings())
    register_token_source(container, source)
    app.state.container = container

    cache = ClientCache(InMemoryBlobStore(), clock=StepClock(), id_factory=lambda: "conv_e2e")
    await cache.restore()
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://relay.test")
    session = ChatSession(cache=cache, client=RelayClient("http://relay.test", http_client=http_client))

    reply = await session.send("Hello")
    await session.wait_for_titles()

    assert reply.rendered == "Hello"
    assert cache.get("conv_e2e").title == "Greeting Exchange"
    server_copy = (await http_client.get("/api/conversation/conv_e2e")).json()
    assert server_copy["title"] == "Greeting Exchange"
    assert [m["content"] for m in server_copy["messages"]] == ["Hello", "Hello"]
    await session.aclose()


@pytest.mark.asyncio
async def test_deleting_conversation_before_title_task_runs_skips_title_and_closes_client() -> None:
    handler = ScriptedRelay(_sse(terminal_event("chat", "Hi there")))
    cache = ClientCache(InMemoryBlobStore(), clock=StepClock(), id_factory=lambda: "conv_1")
    await cache.restore()
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://relay.test")
    session = ChatSession(cache=cache, client=RelayClient("http://relay.test", http_client=http_client))

    await session.send("Hello")
    await session.delete("conv_1")
    await session.aclose()

    assert http_client.is_closed
    assert cache.get("conv_1").messages == []
    assert cache.get("conv_1").title == "New conversation"
    assert all(path != "/api/generate-title" for _, path, _ in handler.requests)


@pytest.mark.asyncio
async def test_infer_title_for_unknown_conversation_returns_none() -> None:
    handler = ScriptedRelay(_sse(terminal_event("chat", "unused")))
    session = await _session(handler)

    assert await session.infer_title("missing") is None
    assert handler.requests == []
    await session.aclose()
