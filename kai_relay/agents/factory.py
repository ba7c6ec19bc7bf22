from __future__ import annotations

import logging
from pathlib import Path

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_openai import ChatOpenAI

from kai_relay.agents.base import TokenStreamSource
from kai_relay.agents.chat_model_source import ChatModelTokenSource
from kai_relay.core.settings import Settings

logger = logging.getLogger(__name__)

_MOCK_MESSAGE_DELIMITER = "\n\n--- message ---\n\n"


def _load_mock_messages(messages_file: str) -> list[str]:
    path = Path(messages_file)
    raw_content = path.read_text(encoding="utf-8")
    parsed_messages = [chunk.strip() for chunk in raw_content.split(_MOCK_MESSAGE_DELIMITER)]
    messages = [message for message in parsed_messages if message]
    if not messages:
        raise ValueError(
            f"No mock messages found in {path}. Use delimiter {_MOCK_MESSAGE_DELIMITER!r} between messages."
        )
    return messages


def _build_chat_model(settings: Settings) -> BaseChatModel:
    if settings.chat_use_mock:
        fake_responses = _load_mock_messages(messages_file=settings.chat_mock_messages_file)
        logger.info("using FakeListChatModel token source", extra={"responses_count": len(fake_responses)})
        return FakeListChatModel(responses=fake_responses)

    logger.info(
        "using model-provider token source",
        extra={"model": settings.chat_model, "base_url": settings.model_provider_base_url},
    )
    return ChatOpenAI(
        model=settings.chat_model,
        base_url=settings.model_provider_base_url,
        api_key=settings.model_provider_api_key,
        streaming=True,
    )


def build_token_source(settings: Settings) -> TokenStreamSource:
    """Create the token stream source backed by a real or fake chat model."""

    return ChatModelTokenSource(_build_chat_model(settings))
