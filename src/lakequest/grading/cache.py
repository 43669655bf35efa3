"""Verdict cache for AI-graded submissions.

Entries are content-addressed by (domain, challenge id, md5(code)), so
concurrent writers for the same key write the same value and last-writer-wins
is harmless.
"""

from __future__ import annotations

import hashlib
import json
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from redis.asyncio import Redis


def verdict_cache_key(domain: str, challenge_id: str, code: str) -> str:
    digest = hashlib.md5(code.encode("utf-8")).hexdigest()  # noqa: S324  # content address, not security
    return f"validation:{domain}:{challenge_id}:{digest}"


class VerdictCache(ABC):
    @abstractmethod
    async def get(self, key: str) -> dict[str, Any] | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        ...


class RedisVerdictCache(VerdictCache):
    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    async def get(self, key: str) -> dict[str, Any] | None:
        raw = await self.redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        await self.redis.setex(key, ttl_seconds, json.dumps(value))


class InMemoryVerdictCache(VerdictCache):
    """Process-local cache that honours TTLs."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[float, str]] = {}
        self._clock = clock

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return json.loads(raw)

    async def set(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self._entries[key] = (self._clock() + ttl_seconds, json.dumps(value))

    def __len__(self) -> int:
        return len(self._entries)
