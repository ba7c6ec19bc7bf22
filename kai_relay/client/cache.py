from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
import json
import logging
import time
from typing import Any, Literal

from pydantic import ValidationError

from kai_relay.api.schemas.conversation import Conversation, Message, MessageRole
from kai_relay.client.blob_store import BlobStore
from kai_relay.core.settings import DEFAULT_CONVERSATION_TITLE
from kai_relay.services.conversation_store import utc_now
from kai_relay.services.errors import ConversationNotFoundError
from kai_relay.services.title_service import TitleTrigger

logger = logging.getLogger(__name__)

CONVERSATIONS_KEY = "kai_conversations"
LAST_CONVERSATION_KEY = "kai_last_conversation"
THEME_KEY = "kai_theme"

CONNECTION_ERROR = "Connection error"

ReplyStatus = Literal["streaming", "done", "failed"]


def _default_conversation_id() -> str:
    return f"conv_{int(time.time() * 1000)}"


@dataclass
class PendingReply:
    """Transient rendered view of an assistant reply while it streams."""

    conversation_id: str
    text: str = ""
    status: ReplyStatus = "streaming"
    error: str | None = None

    @property
    def finished(self) -> bool:
        return self.status != "streaming"

    @property
    def rendered(self) -> str:
        if self.status == "failed":
            return f"Error: {self.error}"
        return self.text


class ClientCache:
    """Client-resident mirror of every known conversation.

    The mapping is written through to the blob store on every mutation. Streamed
    fragments only touch ``PendingReply`` views; an assistant message reaches the
    durable mapping solely through a terminal event.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        *,
        default_title: str = DEFAULT_CONVERSATION_TITLE,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _default_conversation_id,
    ) -> None:
        self._blob_store = blob_store
        self._default_title = default_title
        self._clock = clock
        self._id_factory = id_factory
        self._conversations: dict[str, Conversation] = {}
        self._title_trigger = TitleTrigger(default_title)
        self.current_id: str | None = None
        self.dark_mode = False

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    @property
    def default_title(self) -> str:
        return self._default_title

    async def load_all(self) -> dict[str, Conversation]:
        raw = await self._blob_store.get(CONVERSATIONS_KEY)
        self._conversations = self._decode(raw) if raw is not None else {}
        return {key: value.model_copy(deep=True) for key, value in self._conversations.items()}

    async def restore(self) -> Conversation:
        """Load the mirror and reopen the last active conversation, creating one if empty."""

        await self.load_all()
        await self.load_theme()
        last_id = await self._blob_store.get(LAST_CONVERSATION_KEY)
        if last_id and last_id in self._conversations:
            return await self.select(last_id)
        if self._conversations:
            return await self.select(next(iter(self._conversations)))
        return await self.create_conversation()

    async def persist(self) -> None:
        blob = {
            conversation_id: conversation.model_dump(mode="json", by_alias=True)
            for conversation_id, conversation in self._conversations.items()
        }
        await self._blob_store.set(CONVERSATIONS_KEY, json.dumps(blob, ensure_ascii=False))
        if self.current_id is not None:
            await self._blob_store.set(LAST_CONVERSATION_KEY, self.current_id)
        else:
            await self._blob_store.delete(LAST_CONVERSATION_KEY)

    def get(self, conversation_id: str) -> Conversation:
        return self._require(conversation_id).model_copy(deep=True)

    def list_by_recency(self) -> list[Conversation]:
        ordered = sorted(self._conversations.values(), key=lambda item: item.updated_at, reverse=True)
        return [conversation.model_copy(deep=True) for conversation in ordered]

    async def create_conversation(self, conversation_id: str | None = None) -> Conversation:
        conversation_id = conversation_id or self._id_factory()
        if conversation_id not in self._conversations:
            now = self._clock()
            self._conversations[conversation_id] = Conversation(
                id=conversation_id,
                title=self._default_title,
                messages=[],
                created_at=now,
                updated_at=now,
            )
        return await self.select(conversation_id)

    async def select(self, conversation_id: str) -> Conversation:
        # Only locally mirrored conversations can be opened; there is no server fetch.
        conversation = self._require(conversation_id)
        self.current_id = conversation_id
        await self.persist()
        return conversation.model_copy(deep=True)

    async def append_message(self, conversation_id: str, role: MessageRole, content: str) -> bool:
        """Append and persist one message; returns ``True`` when title inference is now due."""

        conversation = self._require(conversation_id)
        conversation.messages.append(Message(role=role, content=content))
        conversation.updated_at = self._clock()
        await self.persist()
        return self._title_trigger.should_infer(conversation)

    async def rename(self, conversation_id: str, title: str) -> Conversation:
        title = title.strip()
        if not title:
            raise ValueError("title must not be blank")
        conversation = self._require(conversation_id)
        conversation.title = title
        conversation.updated_at = self._clock()
        await self.persist()
        return conversation.model_copy(deep=True)

    async def delete(self, conversation_id: str) -> Conversation:
        """Delete a conversation and return the one that is current afterwards."""

        self._require(conversation_id)
        del self._conversations[conversation_id]
        self._title_trigger.forget(conversation_id)
        if self.current_id is not None and self.current_id != conversation_id:
            await self.persist()
            return self.get(self.current_id)
        self.current_id = None
        if self._conversations:
            return await self.select(next(iter(self._conversations)))
        return await self.create_conversation()

    def begin_reply(self, conversation_id: str) -> PendingReply:
        self._require(conversation_id)
        return PendingReply(conversation_id=conversation_id)

    async def apply_event(self, reply: PendingReply, payload: dict[str, Any]) -> bool:
        """Reconcile one relay event into ``reply``.

        Returns ``True`` when the committed reply makes title inference due.
        """

        if reply.finished:
            logger.debug("ignoring event after terminal", extra={"conversation_id": reply.conversation_id})
            return False

        if "error" in payload:
            reply.status = "failed"
            reply.error = str(payload["error"])
            return False

        if payload.get("done"):
            full_response = payload.get("fullResponse")
            if not isinstance(full_response, str):
                logger.warning("terminal event without fullResponse", extra={"conversation_id": reply.conversation_id})
                reply.status = "failed"
                reply.error = CONNECTION_ERROR
                return False
            reply.text = full_response
            reply.status = "done"
            if reply.conversation_id not in self._conversations:
                logger.info("reply finished for a deleted conversation", extra={"conversation_id": reply.conversation_id})
                return False
            return await self.append_message(reply.conversation_id, "assistant", full_response)

        content = payload.get("content")
        if isinstance(content, str):
            reply.text += content
        return False

    def abandon_reply(self, reply: PendingReply) -> None:
        """Mark a reply whose transport closed before a terminal event; nothing is persisted."""

        if reply.finished:
            return
        logger.info(
            "reply stream closed without terminal event",
            extra={"conversation_id": reply.conversation_id, "partial_length": len(reply.text)},
        )
        reply.status = "failed"
        reply.error = CONNECTION_ERROR

    async def load_theme(self) -> bool:
        self.dark_mode = (await self._blob_store.get(THEME_KEY)) == "dark"
        return self.dark_mode

    async def toggle_theme(self) -> bool:
        self.dark_mode = not self.dark_mode
        await self._blob_store.set(THEME_KEY, "dark" if self.dark_mode else "light")
        return self.dark_mode

    def _decode(self, raw: str) -> dict[str, Conversation]:
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise TypeError("conversation blob must be a JSON object")
            return {str(key): Conversation.model_validate(value) for key, value in payload.items()}
        except (json.JSONDecodeError, ValidationError, TypeError):
            logger.warning("unreadable conversation blob; starting empty", extra={"blob_length": len(raw)})
            return {}

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation
