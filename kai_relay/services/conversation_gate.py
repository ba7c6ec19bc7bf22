from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
import asyncio
import logging

from kai_relay.services.errors import ConversationBusyError

logger = logging.getLogger(__name__)


@dataclass
class _GateEntry:
    lock: asyncio.Lock
    holders: int = 0


class GateLease:
    """Ownership of one conversation's gate; ``release`` may be called more than once."""

    def __init__(self, gate: ConversationGate, conversation_id: str) -> None:
        self._gate = gate
        self.conversation_id = conversation_id
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._gate._release(self.conversation_id)


class ConversationGate:
    """Keyed asyncio mutex serializing writers of a single conversation."""

    def __init__(self) -> None:
        self._entries: dict[str, _GateEntry] = {}

    def is_held(self, conversation_id: str) -> bool:
        entry = self._entries.get(conversation_id)
        return entry is not None and entry.holders > 0

    async def try_acquire(self, conversation_id: str) -> GateLease:
        """Take the gate only if nobody holds or awaits it, else raise ``ConversationBusyError``."""

        entry = self._entries.get(conversation_id)
        if entry is not None and entry.holders > 0:
            raise ConversationBusyError(conversation_id)
        return await self.acquire(conversation_id)

    async def acquire(self, conversation_id: str) -> GateLease:
        entry = self._entries.setdefault(conversation_id, _GateEntry(lock=asyncio.Lock()))
        entry.holders += 1
        try:
            await entry.lock.acquire()
        except BaseException:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(conversation_id, None)
            raise
        return GateLease(self, conversation_id)

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[GateLease]:
        lease = await self.acquire(conversation_id)
        try:
            yield lease
        finally:
            lease.release()

    def _release(self, conversation_id: str) -> None:
        entry = self._entries.get(conversation_id)
        if entry is None:
            logger.warning("gate released without holder", extra={"conversation_id": conversation_id})
            return
        entry.lock.release()
        entry.holders -= 1
        if entry.holders == 0:
            self._entries.pop(conversation_id, None)
