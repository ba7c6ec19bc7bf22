from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Protocol

from kai_relay.api.schemas.conversation import Conversation, MessageRole

if TYPE_CHECKING:
    from kai_relay.services.chat_service import ChatStream


class ConversationStoreProtocol(Protocol):
    """Server-side conversation registry scoped to one process run."""

    @property
    def default_title(self) -> str:
        """Placeholder title given to conversations created without one."""

    def upsert(self, conversation_id: str, title: str | None = None) -> Conversation:
        """Return the conversation for ``conversation_id``, creating it when unknown."""

    def get(self, conversation_id: str) -> Conversation:
        """Return the conversation or raise ``ConversationNotFoundError``."""

    def list(self) -> list[Conversation]:
        """Return all conversations, most recently updated first."""

    def append(self, conversation_id: str, role: MessageRole, content: str) -> Conversation:
        """Append one message; raises ``ConversationNotFoundError`` when absent."""

    def rename(self, conversation_id: str, title: str) -> Conversation:
        """Change the title; raises ``ConversationNotFoundError`` when absent."""

    def remove(self, conversation_id: str) -> bool:
        """Delete the conversation, returning ``False`` when it was not present."""

    def __contains__(self, conversation_id: object) -> bool:
        ...


class ChatServiceProtocol(Protocol):
    """Chat relay use-case contract consumed by the chat router."""

    async def open_chat(self, conversation_id: str, message: str) -> ChatStream:
        """Persist the user turn and return the SSE stream for the assistant reply."""


class TitleServiceProtocol(Protocol):
    """Title inference contract consumed by the chat router."""

    def stream_title(self, seed: str, conversation_id: str | None = None) -> AsyncIterator[str]:
        """Stream SSE events ending in a title terminal event."""
