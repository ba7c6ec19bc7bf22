"""Service layer orchestrating relay use-cases."""

from kai_relay.services.chat_service import ChatService, ChatStream
from kai_relay.services.conversation_gate import ConversationGate, GateLease
from kai_relay.services.conversation_store import InMemoryConversationStore
from kai_relay.services.stream_relay import StreamRelay, StreamSession
from kai_relay.services.title_service import TitleService, TitleTrigger

__all__ = [
    "ChatService",
    "ChatStream",
    "ConversationGate",
    "GateLease",
    "InMemoryConversationStore",
    "StreamRelay",
    "StreamSession",
    "TitleService",
    "TitleTrigger",
]
