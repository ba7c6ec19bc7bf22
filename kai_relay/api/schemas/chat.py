from pydantic import Field

from kai_relay.api.schemas.conversation import CamelModel


class ChatMessageRequest(CamelModel):
    message: str = Field(..., min_length=1, description="User message text sent to the assistant")
    conversation_id: str = Field(..., min_length=1, description="Conversation the message belongs to")


class TitleRequest(CamelModel):
    message: str = Field(..., min_length=1, description="Seed message the title is derived from")
    conversation_id: str | None = Field(
        default=None,
        description="Optional conversation to rename server-side once the title is generated",
    )
