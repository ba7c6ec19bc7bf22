from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
import asyncio
import logging

from kai_relay.agents.base import GenerationOptions, TokenStreamSource
from kai_relay.api.schemas.conversation import Message
from kai_relay.services.chat_stream import (
    RelayEvent,
    TerminalKind,
    error_event,
    fragment_event,
    terminal_event,
)
from kai_relay.services.sanitizer import sanitize_response

logger = logging.getLogger(__name__)

CHAT_STREAM_ERROR = "Assistant stream failed"
TITLE_STREAM_ERROR = "Title generation failed"


@dataclass
class StreamSession:
    """State of one in-flight relay run. Never persisted."""

    kind: TerminalKind = "chat"
    conversation_id: str | None = None
    finalize: Callable[[str], str] = sanitize_response
    fragments: list[str] = field(default_factory=list)
    result: str | None = None
    failed: bool = False

    @property
    def accumulated(self) -> str:
        return "".join(self.fragments)

    @property
    def completed(self) -> bool:
        return self.result is not None

    @property
    def error_message(self) -> str:
        return TITLE_STREAM_ERROR if self.kind == "title" else CHAT_STREAM_ERROR


class StreamRelay:
    """Relays one generation request from a token source as ordered stream events.

    Every run yields zero or more fragment events followed by exactly one
    terminal or error event. On success the finalized text is left on
    ``session.result`` for the caller to persist; failures and abandoned
    streams leave it unset.
    """

    def __init__(self, source: TokenStreamSource) -> None:
        self._source = source

    async def run(
        self,
        session: StreamSession,
        messages: Sequence[Message],
        options: GenerationOptions,
    ) -> AsyncIterator[RelayEvent]:
        fragments: AsyncIterator[str] | None = None
        try:
            fragments = self._source.stream(messages, options)
            async for fragment in fragments:
                session.fragments.append(fragment)
                yield fragment_event(fragment)
        except (GeneratorExit, asyncio.CancelledError):
            logger.info(
                "relay consumer went away; discarding partial response",
                extra={"conversation_id": session.conversation_id, "kind": session.kind},
            )
            session.fragments.clear()
            raise
        except Exception:
            logger.exception(
                "relay source failed",
                extra={"conversation_id": session.conversation_id, "kind": session.kind},
            )
            session.failed = True
            session.fragments.clear()
            yield error_event(session.error_message)
            return
        finally:
            # Runs on consumer disconnect too, so the upstream generation is aborted.
            if fragments is not None:
                aclose = getattr(fragments, "aclose", None)
                if aclose is not None:
                    await aclose()

        session.result = session.finalize(session.accumulated)
        logger.debug(
            "relay session completed",
            extra={
                "conversation_id": session.conversation_id,
                "kind": session.kind,
                "fragments": len(session.fragments),
            },
        )
        yield terminal_event(session.kind, session.result)
