"""
Tests for the shared key-value store implementations.
"""

from unittest.mock import AsyncMock

import pytest

from remauth.store import RedisKeyValueStore


class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_set_get_delete(self, store):
        await store.set("k", "v", 10)
        assert await store.get("k") == "v"

        await store.delete("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_entries_expire(self, store, clock):
        await store.set("k", "v", 10)

        clock.advance(9)
        assert await store.get("k") == "v"

        clock.advance(1)
        assert await store.get("k") is None
        assert "k" not in store

    @pytest.mark.asyncio
    async def test_set_overwrites_value_and_ttl(self, store, clock):
        await store.set("k", "old", 5)
        clock.advance(4)
        await store.set("k", "new", 5)
        clock.advance(4)

        assert await store.get("k") == "new"

    @pytest.mark.asyncio
    async def test_pop(self, store, clock):
        await store.set("k", "v", 10)

        assert await store.pop("k") == "v"
        assert await store.pop("k") is None

        await store.set("k", "v", 10)
        clock.advance(10)
        assert await store.pop("k") is None

    @pytest.mark.asyncio
    async def test_expire_renews_existing_key(self, store, clock):
        await store.set("k", "v", 5)
        clock.advance(4)

        assert await store.expire("k", 5)
        clock.advance(4)
        assert await store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_expire_does_not_create_key(self, store, clock):
        assert not await store.expire("missing", 5)
        assert "missing" not in store

        await store.set("k", "v", 5)
        clock.advance(5)
        assert not await store.expire("k", 5)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_delete_missing_key(self, store):
        await store.delete("missing")


class TestRedisStore:

    @pytest.fixture
    def redis_store(self):
        redis_store = RedisKeyValueStore("redis://localhost:6379/0")
        redis_store.client = AsyncMock()
        return redis_store

    @pytest.mark.asyncio
    async def test_set_uses_expiry(self, redis_store):
        await redis_store.set("csrf:abc", "true", 60)

        redis_store.client.set.assert_awaited_once_with("csrf:abc", "true", ex=60)

    @pytest.mark.asyncio
    async def test_pop_is_getdel(self, redis_store):
        redis_store.client.getdel.return_value = "true"

        assert await redis_store.pop("csrf:abc") == "true"
        redis_store.client.getdel.assert_awaited_once_with("csrf:abc")

    @pytest.mark.asyncio
    async def test_get_and_delete(self, redis_store):
        redis_store.client.get.return_value = None

        assert await redis_store.get("k") is None
        await redis_store.delete("k")

        redis_store.client.get.assert_awaited_once_with("k")
        redis_store.client.delete.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_expire(self, redis_store):
        redis_store.client.expire.return_value = 0

        assert not await redis_store.expire("session:abc", 3600)
        redis_store.client.expire.assert_awaited_once_with("session:abc", 3600)
