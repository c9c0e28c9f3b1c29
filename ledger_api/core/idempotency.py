"""
Idempotency record types and storage backends.

A record is ``processing`` while the first request holding the key runs and
``completed`` once its response has been captured. Backends only need
``get`` and ``set``; ``set_if_not_exists`` and ``delete`` are optional and
make reservation atomic and server-fault cleanup possible.
"""

import logging
import math
import time
from typing import Callable, Dict, Literal, Optional, Protocol, Tuple

from pydantic import BaseModel, ValidationError as PydanticValidationError
from redis.asyncio import Redis

from ledger_api.core.config import Settings

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class StoredResponse(BaseModel):
    status_code: int
    headers: Dict[str, str] = {}
    body: str = ""
    is_base64_encoded: bool = False


class IdempotencyRecord(BaseModel):
    status: Literal["processing", "completed"]
    created_at: int  # epoch milliseconds
    response: Optional[StoredResponse] = None

    @classmethod
    def processing(cls) -> "IdempotencyRecord":
        return cls(status="processing", created_at=now_ms())

    @classmethod
    def completed(cls, response: StoredResponse) -> "IdempotencyRecord":
        return cls(status="completed", created_at=now_ms(), response=response)


class IdempotencyStore(Protocol):
    async def get(self, key: str) -> Optional[IdempotencyRecord]: ...

    async def set(self, key: str, record: IdempotencyRecord, ttl_seconds: int) -> None: ...


class InMemoryIdempotencyStore:
    """Process-local store. Entries expire lazily on access and are compacted in bulk on write."""

    def __init__(self, cleanup_window_seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[IdempotencyRecord, float]] = {}
        self._cleanup_window = cleanup_window_seconds
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        self._evict(key)
        entry = self._entries.get(key)
        return entry[0] if entry else None

    async def set(self, key: str, record: IdempotencyRecord, ttl_seconds: int) -> None:
        now = self._clock()
        expires_at = now + ttl_seconds if ttl_seconds > 0 else math.inf
        self._entries[key] = (record, expires_at)
        self._maybe_compact(now)

    async def set_if_not_exists(self, key: str, record: IdempotencyRecord, ttl_seconds: int) -> bool:
        # No await between the check and the write, so this is atomic on one event loop.
        self._evict(key)
        if key in self._entries:
            return False
        await self.set(key, record, ttl_seconds)
        return True

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def _evict(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry and entry[1] <= self._clock():
            del self._entries[key]

    def _maybe_compact(self, now: float) -> None:
        if not self._entries:
            return
        oldest_expiry = min(expires_at for _, expires_at in self._entries.values())
        if oldest_expiry == math.inf:
            return
        if oldest_expiry - now <= self._cleanup_window:
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]


class RedisIdempotencyStore:
    """Shared store for multi-process deployments. Values are JSON documents."""

    def __init__(self, client: Redis, prefix: str = "idempotency:"):
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[IdempotencyRecord]:
        raw = await self.client.get(self._key(key))
        if raw is None:
            return None
        try:
            return IdempotencyRecord.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning(f"[IDEMPOTENCY] Dropping unreadable record for key {key}")
            await self.client.delete(self._key(key))
            raise

    async def set(self, key: str, record: IdempotencyRecord, ttl_seconds: int) -> None:
        await self.client.set(
            self._key(key),
            record.model_dump_json(),
            px=ttl_seconds * 1000 if ttl_seconds > 0 else None,
        )

    async def set_if_not_exists(self, key: str, record: IdempotencyRecord, ttl_seconds: int) -> bool:
        result = await self.client.set(
            self._key(key),
            record.model_dump_json(),
            px=ttl_seconds * 1000 if ttl_seconds > 0 else None,
            nx=True,
        )
        return bool(result)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def close(self) -> None:
        await self.client.aclose()


def build_idempotency_store(settings: Settings) -> IdempotencyStore:
    """Pick the storage backend once, at startup."""
    backend = settings.idempotency_backend.lower()
    if backend == "redis":
        if not settings.redis_url:
            raise ValueError("REDIS_URL must be set when IDEMPOTENCY_BACKEND=redis")
        logger.info("[IDEMPOTENCY] Using Redis store")
        client = Redis.from_url(settings.redis_url, decode_responses=True)
        return RedisIdempotencyStore(client, prefix=settings.idempotency_key_prefix)
    if backend == "memory":
        logger.info("[IDEMPOTENCY] Using in-memory store")
        return InMemoryIdempotencyStore(settings.idempotency_cleanup_window_seconds)
    raise ValueError(f"Unknown idempotency backend: {settings.idempotency_backend}")
