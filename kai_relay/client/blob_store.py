from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from redis.asyncio import Redis

from kai_relay.client.settings import ClientSettings

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    """Durable key-value store holding opaque string blobs."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def close(self) -> None:
        ...


class InMemoryBlobStore:
    """Process-local blob store, mostly useful for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.values.pop(key, None)

    async def close(self) -> None:
        return None


class JsonFileBlobStore:
    """One file per key under a root directory, replaced atomically on write."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = self._root / f"{key}.{uuid4().hex}.tmp"
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def close(self) -> None:
        return None

    def _path(self, key: str) -> Path:
        return self._root / f"{key}.json"


class RedisBlobStore:
    """Redis-backed blob store without expiry."""

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "kai:client",
        redis_client: Redis | None = None,
    ) -> None:
        self._redis = redis_client if redis_client is not None else Redis.from_url(redis_url, decode_responses=True)
        self._key_prefix = key_prefix.strip(":")

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(self._full_key(key))
        return str(value) if value is not None else None

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(self._full_key(key), value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._full_key(key))

    async def close(self) -> None:
        await self._redis.aclose()

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"


def build_blob_store(settings: ClientSettings) -> BlobStore:
    if settings.blob_store == "redis":
        logger.info("using redis blob store", extra={"key_prefix": settings.key_prefix})
        return RedisBlobStore(redis_url=settings.redis_url, key_prefix=settings.key_prefix)
    if settings.blob_store == "memory":
        logger.info("using in-memory blob store; nothing survives this process")
        return InMemoryBlobStore()
    logger.info("using file blob store", extra={"storage_dir": settings.storage_dir})
    return JsonFileBlobStore(settings.storage_dir)
