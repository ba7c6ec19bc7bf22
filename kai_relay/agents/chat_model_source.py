from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
import logging
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel

from kai_relay.agents.base import GenerationOptions, TokenStreamSource
from kai_relay.api.schemas.conversation import Message

logger = logging.getLogger(__name__)


class ChatModelTokenSource(TokenStreamSource):
    """Streams text fragments from a LangChain chat model."""

    def __init__(self, model: BaseChatModel) -> None:
        self._model = model

    async def stream(self, messages: Sequence[Message], options: GenerationOptions) -> AsyncIterator[str]:
        logger.debug(
            "streaming completion from chat model",
            extra={"messages_count": len(messages), "max_tokens": options.max_tokens},
        )
        payload = [{"role": message.role, "content": message.content} for message in messages]
        async for chunk in self._model.astream(
            payload,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
        ):
            for text in self._extract_text(chunk):
                yield text

    def _extract_text(self, chunk: Any) -> list[str]:
        chunk_content = getattr(chunk, "content", chunk)
        if isinstance(chunk_content, str):
            return [chunk_content] if chunk_content else []

        if not isinstance(chunk_content, list):
            return []

        parsed: list[str] = []
        for item in chunk_content:
            if isinstance(item, str):
                if item:
                    parsed.append(item)
                continue
            item_type = item.get("type") if isinstance(item, dict) else getattr(item, "type", None)
            if item_type != "text":
                continue
            text = item.get("text", "") if isinstance(item, dict) else getattr(item, "text", "")
            if text:
                parsed.append(text)
        return parsed
