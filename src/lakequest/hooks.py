"""Post-commit hooks: best-effort side effects that run after the primary transaction.

Each hook runs in its own session and is individually guarded, so a failing
achievement check can neither fail the submission nor stop the next hook.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

PostCommitHook = Callable[[AsyncSession, int], Awaitable[Any]]
SessionOpener = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass
class HookOutcome:
    name: str
    ok: bool
    result: Any = None


@dataclass
class PostCommitHooks:
    """Ordered list of named hooks run after a committed submission or login."""

    session_factory: SessionOpener
    hooks: list[tuple[str, PostCommitHook]] = field(default_factory=list)

    def register(self, name: str, hook: PostCommitHook) -> None:
        self.hooks.append((name, hook))

    async def run(self, user_id: int) -> dict[str, HookOutcome]:
        """Run every hook for user_id. Never raises."""
        outcomes: dict[str, HookOutcome] = {}
        for name, hook in self.hooks:
            try:
                async with self.session_factory() as db:
                    result = await hook(db, user_id)
                outcomes[name] = HookOutcome(name=name, ok=True, result=result)
            except Exception:
                logger.warning("Post-commit hook %s failed for user %s", name, user_id, exc_info=True)
                outcomes[name] = HookOutcome(name=name, ok=False)
        return outcomes
