"""Rate limit entry stores: in-memory and Redis."""

import asyncio
import math
from collections import defaultdict
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

import redis.asyncio as redis
import structlog

from seoreport.config import get_settings
from seoreport.models import RateLimitEntry

logger = structlog.get_logger()


@runtime_checkable
class RateLimitStore(Protocol):
    """Storage for per-identity rate limit entries."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...

    async def health_check(self) -> bool: ...

    async def get(self, identity: str) -> Optional[RateLimitEntry]: ...

    async def set(self, entry: RateLimitEntry, ttl_seconds: Optional[float] = None) -> None:
        """Save ``entry``. Backends that expire keys drop it after ``ttl_seconds``."""
        ...

    def lock(self, identity: str) -> AbstractAsyncContextManager[None]:
        """Hold exclusive access to one identity's entry."""
        ...


class InMemoryRateLimitStore:
    """
    Process-local store.

    Entries live for the process lifetime and are never evicted, so the map
    grows with the number of distinct identities and is lost on restart.
    """

    def __init__(self) -> None:
        self._entries: dict[str, RateLimitEntry] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def connect(self) -> None:
        logger.info("rate_limit_store_ready", backend="memory")

    async def disconnect(self) -> None:
        return None

    async def health_check(self) -> bool:
        return True

    async def get(self, identity: str) -> Optional[RateLimitEntry]:
        entry = self._entries.get(identity)
        return entry.model_copy() if entry else None

    async def set(self, entry: RateLimitEntry, ttl_seconds: Optional[float] = None) -> None:
        self._entries[entry.identity] = entry.model_copy()

    @asynccontextmanager
    async def lock(self, identity: str) -> AsyncIterator[None]:
        async with self._locks[identity]:
            yield

    def __len__(self) -> int:
        return len(self._entries)


class RedisRateLimitStore:
    """Store backed by Redis, shared between processes."""

    KEY_PREFIX = "seoreport:ratelimit"
    LOCK_TIMEOUT_SECONDS = 5

    def __init__(self) -> None:
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        settings = get_settings()
        self._client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
            max_connections=settings.redis_pool_size,
        )
        # Test connection
        await self._client.ping()
        logger.info("redis_connected", host=settings.redis_host, port=settings.redis_port)

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            logger.info("redis_disconnected")

    async def health_check(self) -> bool:
        """Check if Redis is healthy."""
        try:
            if self._client:
                await self._client.ping()
                return True
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
        return False

    def _key(self, identity: str) -> str:
        return f"{self.KEY_PREFIX}:{identity}"

    async def get(self, identity: str) -> Optional[RateLimitEntry]:
        if not self._client:
            raise RuntimeError("Redis not connected")

        data = await self._client.get(self._key(identity))
        if not data:
            return None
        return RateLimitEntry.model_validate_json(data)

    async def set(self, entry: RateLimitEntry, ttl_seconds: Optional[float] = None) -> None:
        if not self._client:
            raise RuntimeError("Redis not connected")

        ex = max(math.ceil(ttl_seconds), 1) if ttl_seconds is not None else None
        await self._client.set(self._key(entry.identity), entry.model_dump_json(), ex=ex)

    @asynccontextmanager
    async def lock(self, identity: str) -> AsyncIterator[None]:
        if not self._client:
            raise RuntimeError("Redis not connected")

        async with self._client.lock(
            f"{self._key(identity)}:lock",
            timeout=self.LOCK_TIMEOUT_SECONDS,
            blocking_timeout=self.LOCK_TIMEOUT_SECONDS,
        ):
            yield


# Singleton instance
_store: RateLimitStore | None = None


def get_store() -> RateLimitStore:
    """Get the rate limit store singleton for the configured backend."""
    global _store
    if _store is None:
        backend = get_settings().rate_limit_backend.lower()
        if backend == "redis":
            _store = RedisRateLimitStore()
        elif backend == "memory":
            _store = InMemoryRateLimitStore()
        else:
            raise ValueError(f"Unknown rate limit backend: {backend}")
    return _store
