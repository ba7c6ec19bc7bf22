from __future__ import annotations

import asyncio
from contextlib import aclosing
import logging

import httpx

from kai_relay.client.blob_store import build_blob_store
from kai_relay.client.cache import ClientCache, PendingReply
from kai_relay.client.relay_client import RelayClient
from kai_relay.client.settings import ClientSettings
from kai_relay.services.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)


class ChatSession:
    """Drives client turns: optimistic user append, stream reconciliation and titling."""

    def __init__(self, cache: ClientCache, client: RelayClient) -> None:
        self.cache = cache
        self._client = client
        self._title_tasks: set[asyncio.Task[str | None]] = set()

    @classmethod
    async def from_settings(cls, settings: ClientSettings) -> ChatSession:
        cache = ClientCache(build_blob_store(settings))
        await cache.restore()
        client = RelayClient(settings.base_url, timeout_seconds=settings.timeout_seconds)
        return cls(cache=cache, client=client)

    async def send(self, message: str) -> PendingReply:
        message = message.strip()
        if not message:
            raise ValueError("message must not be blank")
        conversation_id = self.cache.current_id
        if conversation_id is None:
            raise RuntimeError("no conversation is selected")

        title_due = await self.cache.append_message(conversation_id, "user", message)
        reply = self.cache.begin_reply(conversation_id)
        try:
            async with aclosing(self._client.stream_chat(conversation_id, message)) as events:
                async for payload in events:
                    title_due = await self.cache.apply_event(reply, payload) or title_due
                    if reply.finished:
                        break
        except httpx.HTTPError:
            logger.warning("chat transport failed", exc_info=True, extra={"conversation_id": conversation_id})
        self.cache.abandon_reply(reply)

        if title_due:
            self._schedule_title(conversation_id)
        return reply

    async def infer_title(self, conversation_id: str) -> str | None:
        if conversation_id not in self.cache:
            logger.info("conversation gone before title inference", extra={"conversation_id": conversation_id})
            return None
        messages = self.cache.get(conversation_id).messages
        if not messages:
            return None
        seed = messages[0].content
        title: str | None = None
        try:
            async with aclosing(self._client.stream_title(seed, conversation_id)) as events:
                async for payload in events:
                    if "error" in payload:
                        logger.warning("title inference failed", extra={"conversation_id": conversation_id})
                        return None
                    if payload.get("done") and isinstance(payload.get("title"), str):
                        title = payload["title"]
        except httpx.HTTPError:
            logger.warning("title transport failed", exc_info=True, extra={"conversation_id": conversation_id})
            return None

        if not title or conversation_id not in self.cache:
            return None
        await self.cache.rename(conversation_id, title)
        return title

    async def wait_for_titles(self) -> None:
        if self._title_tasks:
            results = await asyncio.gather(*self._title_tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("title task failed", exc_info=result)

    async def rename(self, conversation_id: str, title: str) -> None:
        conversation = await self.cache.rename(conversation_id, title)
        try:
            await self._client.rename_conversation(conversation_id, conversation.title)
        except (ConversationNotFoundError, httpx.HTTPError):
            logger.debug("server copy not renamed", extra={"conversation_id": conversation_id})

    async def delete(self, conversation_id: str) -> None:
        await self.cache.delete(conversation_id)
        try:
            await self._client.delete_conversation(conversation_id)
        except httpx.HTTPError:
            logger.debug("server copy not deleted", extra={"conversation_id": conversation_id})

    async def new_conversation(self) -> str:
        conversation = await self.cache.create_conversation()
        try:
            await self._client.upsert_conversation(conversation.id)
        except httpx.HTTPError:
            logger.debug("server copy not created", extra={"conversation_id": conversation.id})
        return conversation.id

    async def aclose(self) -> None:
        try:
            await self.wait_for_titles()
        finally:
            await self._client.aclose()

    def _schedule_title(self, conversation_id: str) -> None:
        task = asyncio.create_task(self.infer_title(conversation_id))
        self._title_tasks.add(task)
        task.add_done_callback(self._title_tasks.discard)
