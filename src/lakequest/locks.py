"""Critical-section locking for match joins, match submissions and progress updates.

On PostgreSQL the rows themselves are locked with SELECT ... FOR UPDATE and
the in-process lock is skipped. Stores without row locking (SQLite in tests
and offline mode) get a process-local asyncio.Lock per key instead.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


class KeyedLock:
    """A registry of asyncio locks, one per key, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


_local_locks = KeyedLock()


def supports_row_locks(db: AsyncSession) -> bool:
    """True when the bound dialect honours FOR UPDATE."""
    bind = db.get_bind()
    return getattr(getattr(bind, "dialect", None), "name", "") == "postgresql"


@contextlib.asynccontextmanager
async def critical_section(db: AsyncSession, key: str) -> AsyncIterator[None]:
    """Serialize a critical section identified by key when row locks are unavailable."""
    if supports_row_locks(db):
        yield
        return
    async with _local_locks.hold(key):
        yield
