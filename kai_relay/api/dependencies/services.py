from fastapi import Request

from kai_relay.dependency_injection import get_container
from kai_relay.services.contracts import ChatServiceProtocol, ConversationStoreProtocol, TitleServiceProtocol
from kai_relay.services.conversation_gate import ConversationGate


def get_conversation_store(request: Request) -> ConversationStoreProtocol:
    return get_container(request).resolve(ConversationStoreProtocol)


def get_conversation_gate(request: Request) -> ConversationGate:
    return get_container(request).resolve(ConversationGate)


def get_chat_service(request: Request) -> ChatServiceProtocol:
    return get_container(request).resolve(ChatServiceProtocol)


def get_title_service(request: Request) -> TitleServiceProtocol:
    return get_container(request).resolve(TitleServiceProtocol)
