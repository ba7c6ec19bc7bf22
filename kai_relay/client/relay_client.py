from __future__ import annotations

from collections.abc import AsyncIterator
import logging
from typing import Any

import httpx

from kai_relay.api.schemas.conversation import Conversation
from kai_relay.services.chat_stream import iter_sse_payloads
from kai_relay.services.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)


class RelayClient:
    """HTTP client for the relay API; streamed endpoints yield decoded SSE payloads."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = (
            http_client
            if http_client is not None
            else httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout_seconds)
        )

    async def upsert_conversation(self, conversation_id: str, title: str | None = None) -> Conversation:
        response = await self._client.post(
            "/api/conversation",
            json={"conversationId": conversation_id, "title": title},
        )
        response.raise_for_status()
        return Conversation.model_validate(response.json())

    async def rename_conversation(self, conversation_id: str, title: str) -> Conversation:
        response = await self._client.patch(f"/api/conversation/{conversation_id}", json={"title": title})
        if response.status_code == httpx.codes.NOT_FOUND:
            raise ConversationNotFoundError(conversation_id)
        response.raise_for_status()
        return Conversation.model_validate(response.json())

    async def delete_conversation(self, conversation_id: str) -> bool:
        response = await self._client.delete(f"/api/conversation/{conversation_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        response.raise_for_status()
        return True

    def stream_chat(self, conversation_id: str, message: str) -> AsyncIterator[dict[str, Any]]:
        return self._stream("/api/chat", {"message": message, "conversationId": conversation_id})

    def stream_title(self, seed: str, conversation_id: str | None = None) -> AsyncIterator[dict[str, Any]]:
        return self._stream("/api/generate-title", {"message": seed, "conversationId": conversation_id})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _stream(self, path: str, body: dict[str, Any]) -> AsyncIterator[dict[str, Any]]:
        async with self._client.stream("POST", path, json=body) as response:
            response.raise_for_status()
            async for payload in iter_sse_payloads(response.aiter_lines()):
                yield payload
