"""
Shared key-value store used for sessions, CSRF-Auth tokens and the public key
cache.

All cross-request coordination in the service goes through this interface.
``RedisKeyValueStore`` is the production implementation;
``MemoryKeyValueStore`` implements the same interface in-process for tests and
single-instance development.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Capability interface over the shared store."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def pop(self, key: str) -> Optional[str]:
        """Atomically read and delete ``key``; ``None`` if it was absent."""
        ...

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Reset the TTL of an existing ``key``; False if it is absent."""
        ...

    async def close(self) -> None:
        ...


# =============================================================================
# Redis
# =============================================================================

class RedisKeyValueStore:
    """Thin Redis wrapper; every write carries an expiry."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def pop(self, key: str) -> Optional[str]:
        # GETDEL (Redis >= 6.2) is a single command, so two callers can
        # never both observe the value.
        return await self.client.getdel(key)

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self.client.expire(key, max(1, int(ttl_seconds))))

    async def close(self) -> None:
        await self.client.aclose()


# =============================================================================
# In-memory
# =============================================================================

class MemoryKeyValueStore:
    """
    In-process TTL store with the same semantics as the Redis store.

    Expired entries are dropped lazily on access. The clock is injectable so
    expiry can be exercised without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, deadline = entry
        if self._clock() >= deadline:
            del self._data[key]
            logger.debug("Expired key dropped", extra={"key": key})
            return None
        return value

    async def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def pop(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            value = self._live(key)
            if value is None:
                return False
            self._data[key] = (value, self._clock() + max(1, int(ttl_seconds)))
            return True

    async def close(self) -> None:
        with self._lock:
            self._data.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return self._live(key) is not None
