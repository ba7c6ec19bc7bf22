from collections.abc import Sequence
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

from kai_relay.api.schemas.conversation import Message


@dataclass(frozen=True)
class GenerationOptions:
    temperature: float
    max_tokens: int


class TokenStreamSource(Protocol):
    """Contract for model backends that stream text fragments for a message history."""

    def stream(self, messages: Sequence[Message], options: GenerationOptions) -> AsyncIterator[str]:
        """Yield generated text fragments in order; the iterator cannot be restarted."""
