from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing
from functools import partial
import logging

from kai_relay.agents.base import GenerationOptions
from kai_relay.api.schemas.conversation import Conversation, Message
from kai_relay.core.settings import Settings
from kai_relay.services.chat_stream import encode_sse_event
from kai_relay.services.contracts import ConversationStoreProtocol
from kai_relay.services.conversation_gate import ConversationGate
from kai_relay.services.sanitizer import clean_title
from kai_relay.services.stream_relay import StreamRelay, StreamSession

logger = logging.getLogger(__name__)

_TITLE_PROMPT = (
    'Generate a short, descriptive title (3-5 words maximum) for a conversation that starts with: "{seed}". '
    "Reply ONLY with the title, without quotes, without final punctuation, without explanation."
)


def build_title_prompt(seed: str) -> list[Message]:
    return [Message(role="user", content=_TITLE_PROMPT.format(seed=seed))]


class TitleTrigger:
    """Decides when a conversation is due for title inference.

    Fires once per conversation id: when it holds exactly one user message
    answered by one assistant message and still carries the default title.
    Later title resets never re-arm it.
    """

    def __init__(self, default_title: str) -> None:
        self._default_title = default_title
        self._requested: set[str] = set()

    def should_infer(self, conversation: Conversation) -> bool:
        if conversation.id in self._requested:
            return False
        if len(conversation.messages) != 2 or conversation.title != self._default_title:
            return False
        if [message.role for message in conversation.messages] != ["user", "assistant"]:
            return False
        self._requested.add(conversation.id)
        return True

    def has_fired(self, conversation_id: str) -> bool:
        return conversation_id in self._requested

    def forget(self, conversation_id: str) -> None:
        self._requested.discard(conversation_id)


class TitleService:
    """Streams a title for a seed message, optionally renaming a stored conversation."""

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
        self._max_length = settings.title_max_length
        self._options = GenerationOptions(
            temperature=settings.title_temperature,
            max_tokens=settings.title_max_tokens,
        )

    async def stream_title(self, seed: str, conversation_id: str | None = None) -> AsyncIterator[str]:
        session = StreamSession(
            kind="title",
            conversation_id=conversation_id,
            finalize=partial(clean_title, max_length=self._max_length),
        )
        async with aclosing(self._relay.run(session, build_title_prompt(seed), self._options)) as events:
            async for event in events:
                if session.completed and conversation_id is not None:
                    await self._apply_title(conversation_id, session.result or "")
                yield encode_sse_event(event)

    async def _apply_title(self, conversation_id: str, title: str) -> None:
        if not title:
            logger.warning("title inference produced an empty title", extra={"conversation_id": conversation_id})
            return
        async with self._gate.hold(conversation_id):
            if conversation_id not in self._store:
                logger.info("conversation gone before title landed", extra={"conversation_id": conversation_id})
                return
            self._store.rename(conversation_id, title)
        logger.info("conversation titled", extra={"conversation_id": conversation_id})
