from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
import logging

from kai_relay.agents.base import GenerationOptions
from kai_relay.api.schemas.conversation import Message
from kai_relay.core.settings import Settings
from kai_relay.services.chat_stream import encode_sse_event
from kai_relay.services.contracts import ConversationStoreProtocol
from kai_relay.services.conversation_gate import ConversationGate, GateLease
from kai_relay.services.stream_relay import StreamRelay, StreamSession

logger = logging.getLogger(__name__)


@dataclass
class ChatStream:
    """An opened chat relay: SSE body plus the gate lease it holds."""

    body: AsyncIterator[str]
    lease: GateLease

    async def close(self) -> None:
        self.lease.release()


class ChatService:
    """Use-case service relaying chat turns and committing them to the conversation store."""

    def __init__(
        self,
        store: ConversationStoreProtocol,
        gate: ConversationGate,
        relay: StreamRelay,
        settings: Settings,
    ) -> None:
        self._store = store
        self._gate = gate
        self._relay = relay
        self._options = GenerationOptions(
            temperature=settings.chat_temperature,
            max_tokens=settings.chat_max_tokens,
        )

    async def open_chat(self, conversation_id: str, message: str) -> ChatStream:
        """Record the user turn and prepare the relay for the assistant reply.

        Raises ``ConversationBusyError`` before anything is written when another
        chat stream holds the conversation.
        """

        lease = await self._gate.try_acquire(conversation_id)
        try:
            self._store.upsert(conversation_id)
            conversation = self._store.append(conversation_id, "user", message)
        except BaseException:
            lease.release()
            raise

        logger.info(
            "chat relay opened",
            extra={"conversation_id": conversation_id, "messages_count": len(conversation.messages)},
        )
        session = StreamSession(kind="chat", conversation_id=conversation_id)
        return ChatStream(
            body=self._stream_reply(session, conversation.messages, lease),
            lease=lease,
        )

    async def _stream_reply(
        self,
        session: StreamSession,
        history: list[Message],
        lease: GateLease,
    ) -> AsyncIterator[str]:
        try:
            async with aclosing(self._relay.run(session, history, self._options)) as events:
                async for event in events:
                    if session.completed:
                        assert session.conversation_id is not None
                        self._store.append(session.conversation_id, "assistant", session.result or "")
                    yield encode_sse_event(event)
        finally:
            lease.release()
