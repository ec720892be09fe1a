"""Ephemeral key-value store for OTP and rate-limit state.

Every cooldown, lock, counter and one-time code lives in Redis with a TTL.
Correctness relies on Redis' per-key atomic commands; there is no
in-process locking.

The client is created once at service start (see main.lifespan), injected
into every component that needs it, and closed at shutdown.
"""

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Protocol

from redis import asyncio as redis_asyncio
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

StoreValue = str | int


class StoreUnavailableError(Exception):
    """Raised when the key-value store cannot be reached.

    Operational failure, distinct from the typed domain outcomes. The HTTP
    layer maps it to 503.
    """


class KeyValueStore(Protocol):
    """Contract the OTP state machine requires from the ephemeral store."""

    async def get(self, key: str) -> str | None:
        """Return the value stored at key, or None if absent/expired."""
        ...

    async def set(self, key: str, value: StoreValue, ttl_seconds: int) -> None:
        """Store value at key, replacing any previous value and TTL."""
        ...

    async def set_many(
        self, entries: Sequence[tuple[str, StoreValue, int]]
    ) -> None:
        """Store several (key, value, ttl_seconds) entries atomically."""
        ...

    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Increment an integer counter, applying ttl_seconds on creation."""
        ...

    async def ttl(self, key: str) -> int | None:
        """Return remaining lifetime in seconds, or None if absent."""
        ...

    async def delete(self, *keys: str) -> None:
        """Delete keys. Missing keys are ignored."""
        ...

    async def ping(self) -> bool:
        """Return True if the store answers."""
        ...

    async def close(self) -> None:
        """Release the underlying connection pool."""
        ...


@asynccontextmanager
async def _translate_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except RedisError as exc:
        logger.error("Key-value store %s failed: %s", operation, exc)
        raise StoreUnavailableError(f"Key-value store {operation} failed") from exc


class RedisKeyValueStore:
    """KeyValueStore backed by redis-py's asyncio client.

    Args:
        client: Redis client created with decode_responses=True.
    """

    def __init__(self, client: redis_asyncio.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(
        cls, url: str, *, socket_timeout: float | None = None
    ) -> "RedisKeyValueStore":
        """Create a store from a redis:// URL.

        Args:
            url: Redis connection URL.
            socket_timeout: Per-command timeout in seconds. A stalled store
                call is bounded by this value.

        Returns:
            RedisKeyValueStore with its own connection pool.
        """
        client = redis_asyncio.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        async with _translate_errors("get"):
            value = await self._client.get(key)
        return None if value is None else str(value)

    async def set(self, key: str, value: StoreValue, ttl_seconds: int) -> None:
        async with _translate_errors("set"):
            await self._client.set(key, value, ex=ttl_seconds)

    async def set_many(
        self, entries: Sequence[tuple[str, StoreValue, int]]
    ) -> None:
        if not entries:
            return
        async with _translate_errors("set_many"):
            async with self._client.pipeline(transaction=True) as pipe:
                for key, value, ttl_seconds in entries:
                    pipe.set(key, value, ex=ttl_seconds)
                await pipe.execute()

    async def increment(self, key: str, ttl_seconds: int) -> int:
        async with _translate_errors("increment"):
            count = int(await self._client.incr(key))
            # TTL is applied only when INCR created the key, so the window
            # is measured from the first event and never slides.
            if count == 1:
                await self._client.expire(key, ttl_seconds)
        return count

    async def ttl(self, key: str) -> int | None:
        async with _translate_errors("ttl"):
            remaining = int(await self._client.ttl(key))
        # -2: key missing, -1: key without expiry
        if remaining < 0:
            return None
        return remaining

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        async with _translate_errors("delete"):
            await self._client.delete(*keys)

    async def ping(self) -> bool:
        """Return True if Redis answers PING."""
        async with _translate_errors("ping"):
            return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()
