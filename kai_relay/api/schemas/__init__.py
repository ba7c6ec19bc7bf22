from kai_relay.api.schemas.chat import ChatMessageRequest, TitleRequest
from kai_relay.api.schemas.conversation import (
    Conversation,
    ConversationDeleteResponse,
    ConversationRenameRequest,
    ConversationUpsertRequest,
    Message,
    MessageRole,
)

__all__ = [
    "ChatMessageRequest",
    "Conversation",
    "ConversationDeleteResponse",
    "ConversationRenameRequest",
    "ConversationUpsertRequest",
    "Message",
    "MessageRole",
    "TitleRequest",
]
