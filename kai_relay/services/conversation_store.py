from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
import logging

from kai_relay.api.schemas.conversation import Conversation, Message, MessageRole
from kai_relay.core.settings import DEFAULT_CONVERSATION_TITLE
from kai_relay.services.errors import ConversationNotFoundError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class InMemoryConversationStore:
    """Process-scoped conversation registry.

    Holds the context needed for in-flight generation only; nothing survives a
    restart. Every read returns a deep copy so callers never mutate the table.
    Concurrent writers to one conversation must hold its ``ConversationGate`` lease.
    """

    def __init__(
        self,
        default_title: str = DEFAULT_CONVERSATION_TITLE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._default_title = default_title
        self._clock = clock
        self._conversations: dict[str, Conversation] = {}

    @property
    def default_title(self) -> str:
        return self._default_title

    def upsert(self, conversation_id: str, title: str | None = None) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            now = self._clock()
            conversation = Conversation(
                id=conversation_id,
                title=title or self._default_title,
                messages=[],
                created_at=now,
                updated_at=now,
            )
            self._conversations[conversation_id] = conversation
            logger.debug("conversation created", extra={"conversation_id": conversation_id})
        return conversation.model_copy(deep=True)

    def get(self, conversation_id: str) -> Conversation:
        return self._require(conversation_id).model_copy(deep=True)

    def list(self) -> list[Conversation]:
        ordered = sorted(self._conversations.values(), key=lambda item: item.updated_at, reverse=True)
        return [conversation.model_copy(deep=True) for conversation in ordered]

    def append(self, conversation_id: str, role: MessageRole, content: str) -> Conversation:
        conversation = self._require(conversation_id)
        conversation.messages.append(Message(role=role, content=content))
        conversation.updated_at = self._clock()
        return conversation.model_copy(deep=True)

    def rename(self, conversation_id: str, title: str) -> Conversation:
        conversation = self._require(conversation_id)
        conversation.title = title
        conversation.updated_at = self._clock()
        return conversation.model_copy(deep=True)

    def remove(self, conversation_id: str) -> bool:
        removed = self._conversations.pop(conversation_id, None)
        if removed is not None:
            logger.debug("conversation removed", extra={"conversation_id": conversation_id})
        return removed is not None

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation
