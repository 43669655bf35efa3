"""Retry policy for grading calls.

The policy is independent of the grading strategy: it wraps any coroutine
factory and retries on the configured exception types with a backoff between
attempts. Attempts are strictly sequential.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from lakequest.errors import GradingError, GradingTransientError

logger = structlog.get_logger()

T = TypeVar("T")


def exponential_backoff(base: float = 1.0, factor: float = 2.0) -> Callable[[int], float]:
    """Delay before retry n (0-based): base * factor**n -> 1s, 2s, 4s, ..."""

    def delay(attempt: int) -> float:
        return base * (factor ** attempt)

    return delay


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=exponential_backoff)
    retry_on: tuple[type[BaseException], ...] = (GradingTransientError,)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def run(self, operation: Callable[[], Awaitable[T]], *, name: str = "grading") -> T:
        """Run operation, retrying on retry_on. Raises GradingError once attempts are exhausted."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        last_error: BaseException | None = None
        for attempt in range(self.max_attempts):
            try:
                return await operation()
            except self.retry_on as exc:
                last_error = exc
                if attempt == self.max_attempts - 1:
                    break
                delay = self.backoff(attempt)
                logger.warning(
                    "grading_attempt_failed",
                    operation=name,
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    retry_in=delay,
                    error=str(exc),
                )
                await self.sleep(delay)

        logger.error("grading_retries_exhausted", operation=name, attempts=self.max_attempts, error=str(last_error))
        raise GradingError(f"{name} failed after {self.max_attempts} attempts: {last_error}") from last_error
