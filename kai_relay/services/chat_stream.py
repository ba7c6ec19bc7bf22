from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
import json
import logging
from typing import Any, Literal, TypedDict

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "

TerminalKind = Literal["chat", "title"]


class FragmentEvent(TypedDict):
    content: str


class ChatDoneEvent(TypedDict):
    done: Literal[True]
    fullResponse: str


class TitleDoneEvent(TypedDict):
    done: Literal[True]
    title: str


class ErrorEvent(TypedDict):
    error: str


RelayEvent = FragmentEvent | ChatDoneEvent | TitleDoneEvent | ErrorEvent


def fragment_event(content: str) -> FragmentEvent:
    return {"content": content}


def terminal_event(kind: TerminalKind, text: str) -> ChatDoneEvent | TitleDoneEvent:
    if kind == "title":
        return {"done": True, "title": text}
    return {"done": True, "fullResponse": text}


def error_event(message: str) -> ErrorEvent:
    return {"error": message}


def is_final_event(event: RelayEvent | dict[str, Any]) -> bool:
    """Terminal and error events both close a session."""
    return bool(event.get("done")) or "error" in event


def encode_sse_event(event: RelayEvent) -> str:
    return f"{SSE_DATA_PREFIX}{json.dumps(event)}\n\n"


def decode_sse_line(line: str) -> dict[str, Any] | None:
    """Parse one ``data:`` line; other lines and malformed payloads yield ``None``."""

    if not line.startswith(SSE_DATA_PREFIX):
        return None
    try:
        payload = json.loads(line[len(SSE_DATA_PREFIX):])
    except json.JSONDecodeError:
        logger.debug("ignoring malformed sse payload", extra={"line_length": len(line)})
        return None
    return payload if isinstance(payload, dict) else None


async def iter_sse_payloads(lines: AsyncIterable[str]) -> AsyncIterator[dict[str, Any]]:
    async for line in lines:
        payload = decode_sse_line(line.rstrip("\r"))
        if payload is not None:
            yield payload
