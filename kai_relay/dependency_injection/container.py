from __future__ import annotations

import punq
from fastapi import Request

from kai_relay.agents.base import TokenStreamSource
from kai_relay.agents.factory import build_token_source
from kai_relay.core.settings import Settings
from kai_relay.services.chat_service import ChatService
from kai_relay.services.contracts import (
    ChatServiceProtocol,
    ConversationStoreProtocol,
    TitleServiceProtocol,
)
from kai_relay.services.conversation_gate import ConversationGate
from kai_relay.services.conversation_store import InMemoryConversationStore
from kai_relay.services.stream_relay import StreamRelay
from kai_relay.services.title_service import TitleService


def build_container(settings: Settings) -> punq.Container:
    container = punq.Container()
    container.register(Settings, instance=settings)

    container.register(
        ConversationStoreProtocol,
        factory=lambda: InMemoryConversationStore(default_title=settings.default_conversation_title),
        scope=punq.Scope.singleton,
    )
    container.register(ConversationGate, factory=ConversationGate, scope=punq.Scope.singleton)
    container.register(
        TokenStreamSource,
        factory=lambda: build_token_source(settings),
        scope=punq.Scope.singleton,
    )
    container.register(StreamRelay, factory=StreamRelay, scope=punq.Scope.singleton)
    container.register(ChatServiceProtocol, factory=ChatService, scope=punq.Scope.singleton)
    container.register(TitleServiceProtocol, factory=TitleService, scope=punq.Scope.singleton)

    return container


def register_token_source(container: punq.Container, source: TokenStreamSource) -> None:
    container.register(TokenStreamSource, instance=source)


def get_container(request: Request) -> punq.Container:
    return request.app.state.container
