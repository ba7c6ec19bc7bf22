from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MessageRole = Literal["user", "assistant"]


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    role: MessageRole = Field(..., description="Author of the message")
    content: str = Field(..., description="Full message text, sanitized for assistant replies")


class Conversation(CamelModel):
    id: str = Field(..., description="Caller-assigned conversation identifier")
    title: str = Field(..., description="Display title")
    messages: list[Message] = Field(default_factory=list, description="Chronological, append-only transcript")
    created_at: datetime
    updated_at: datetime


class ConversationUpsertRequest(CamelModel):
    conversation_id: str = Field(..., min_length=1, description="Conversation to fetch or create")
    title: str | None = Field(default=None, description="Title used only when the conversation is created")


class ConversationRenameRequest(CamelModel):
    title: str = Field(..., min_length=1, description="New display title")


class ConversationDeleteResponse(CamelModel):
    success: bool
