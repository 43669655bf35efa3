"""Leaderboard store port: total XP per user in a ranked set.

The store is a cache over users.total_xp. Writes are additive increments only
(ZINCRBY), never read-modify-write, and the whole set can be rebuilt from the
relational totals at any time.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from redis.asyncio import Redis


class LeaderboardStore(ABC):
    """Ranked set of user id -> total XP."""

    @abstractmethod
    async def increment(self, member: str, amount: float) -> float:
        """Atomically add amount to member's score and return the new score."""

    @abstractmethod
    async def top(self, start: int, stop: int) -> list[tuple[str, float]]:
        """Members ordered by score descending, inclusive index range like ZREVRANGE."""

    @abstractmethod
    async def rank(self, member: str) -> int | None:
        """0-based descending rank, or None if the member is absent."""

    @abstractmethod
    async def score(self, member: str) -> float | None:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    @abstractmethod
    async def replace_all(self, scores: dict[str, float]) -> None:
        """Drop the set and load scores in one step (rebuild from totals)."""


class RedisLeaderboardStore(LeaderboardStore):
    """Redis sorted set backed leaderboard."""

    def __init__(self, redis: Redis, key: str = "leaderboard:global") -> None:
        self.redis = redis
        self.key = key

    async def increment(self, member: str, amount: float) -> float:
        return float(await self.redis.zincrby(self.key, amount, member))

    async def top(self, start: int, stop: int) -> list[tuple[str, float]]:
        entries = await self.redis.zrevrange(self.key, start, stop, withscores=True)
        return [(str(member), float(score)) for member, score in entries]

    async def rank(self, member: str) -> int | None:
        return await self.redis.zrevrank(self.key, member)

    async def score(self, member: str) -> float | None:
        value = await self.redis.zscore(self.key, member)
        return None if value is None else float(value)

    async def count(self) -> int:
        return int(await self.redis.zcard(self.key))

    async def replace_all(self, scores: dict[str, float]) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.delete(self.key)
        if scores:
            pipe.zadd(self.key, scores)
        await pipe.execute()


class InMemoryLeaderboardStore(LeaderboardStore):
    """Process-local stand-in for tests and offline mode."""

    def __init__(self) -> None:
        self._scores: dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _ordered(self) -> list[tuple[str, float]]:
        # Redis orders ties by member descending under ZREVRANGE
        return sorted(self._scores.items(), key=lambda item: (item[1], item[0]), reverse=True)

    async def increment(self, member: str, amount: float) -> float:
        async with self._lock:
            self._scores[member] = self._scores.get(member, 0.0) + amount
            return self._scores[member]

    async def top(self, start: int, stop: int) -> list[tuple[str, float]]:
        ordered = self._ordered()
        end = None if stop == -1 else stop + 1
        return ordered[start:end]

    async def rank(self, member: str) -> int | None:
        for index, (name, _score) in enumerate(self._ordered()):
            if name == member:
                return index
        return None

    async def score(self, member: str) -> float | None:
        return self._scores.get(member)

    async def count(self) -> int:
        return len(self._scores)

    async def replace_all(self, scores: dict[str, float]) -> None:
        async with self._lock:
            self._scores = {member: float(value) for member, value in scores.items()}


def create_leaderboard_store(backend: str, redis: Redis | None = None, key: str = "leaderboard:global") -> LeaderboardStore:
    """Create the leaderboard store selected by configuration."""
    backend = backend.lower()
    if backend == "redis":
        if redis is None:
            msg = "Redis leaderboard backend selected but Redis is not initialized"
            raise ValueError(msg)
        return RedisLeaderboardStore(redis, key)
    if backend == "memory":
        return InMemoryLeaderboardStore()
    msg = f"Unsupported leaderboard backend: {backend}"
    raise ValueError(msg)
