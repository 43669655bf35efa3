"""Unit tests for the content-addressed verdict cache."""

from __future__ import annotations

import hashlib
import json
from unittest.mock import AsyncMock

import pytest

from lakequest.grading.cache import InMemoryVerdictCache, RedisVerdictCache, verdict_cache_key


pytestmark = pytest.mark.asyncio


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    async def test_key_shape(self):
        key = verdict_cache_key("sql", "sql_shore_1", "SELECT 1")
        digest = hashlib.md5(b"SELECT 1").hexdigest()  # noqa: S324
        assert key == f"validation:sql:sql_shore_1:{digest}"

    async def test_same_code_same_key(self):
        assert verdict_cache_key("sql", "c", "SELECT 1") == verdict_cache_key("sql", "c", "SELECT 1")

    async def test_key_varies_by_code_challenge_and_domain(self):
        base = verdict_cache_key("sql", "c", "SELECT 1")
        assert verdict_cache_key("sql", "c", "SELECT 2") != base
        assert verdict_cache_key("sql", "d", "SELECT 1") != base
        assert verdict_cache_key("python", "c", "SELECT 1") != base


class TestInMemoryVerdictCache:
    async def test_miss(self):
        assert await InMemoryVerdictCache().get("nope") is None

    async def test_set_then_get(self):
        cache = InMemoryVerdictCache()
        await cache.set("k", {"correct": True}, 60)
        assert await cache.get("k") == {"correct": True}

    async def test_entry_expires(self):
        clock = _Clock()
        cache = InMemoryVerdictCache(clock=clock)
        await cache.set("k", {"correct": True}, 60)

        clock.now += 59
        assert await cache.get("k") is not None

        clock.now += 1
        assert await cache.get("k") is None
        assert len(cache) == 0

    async def test_last_writer_wins(self):
        cache = InMemoryVerdictCache()
        await cache.set("k", {"v": 1}, 60)
        await cache.set("k", {"v": 2}, 60)
        assert await cache.get("k") == {"v": 2}

    async def test_returned_value_is_a_copy(self):
        cache = InMemoryVerdictCache()
        await cache.set("k", {"hints": []}, 60)
        first = await cache.get("k")
        first["hints"].append("mutated")
        assert await cache.get("k") == {"hints": []}


class TestRedisVerdictCache:
    async def test_set_uses_setex_with_ttl(self):
        redis = AsyncMock()
        await RedisVerdictCache(redis).set("k", {"correct": True}, 86400)
        redis.setex.assert_awaited_once_with("k", 86400, json.dumps({"correct": True}))

    async def test_get_decodes_json(self):
        redis = AsyncMock()
        redis.get.return_value = json.dumps({"correct": False})
        assert await RedisVerdictCache(redis).get("k") == {"correct": False}

    async def test_get_miss(self):
        redis = AsyncMock()
        redis.get.return_value = None
        assert await RedisVerdictCache(redis).get("k") is None
