from __future__ import annotations


class ConversationNotFoundError(LookupError):
    """Raised when an operation targets a conversation id that is not present."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ConversationBusyError(RuntimeError):
    """Raised when a chat stream is requested while another one holds the conversation."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"conversation already has an active stream: {conversation_id}")
        self.conversation_id = conversation_id
