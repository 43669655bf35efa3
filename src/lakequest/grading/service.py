"""Grading service: cache + retry policy around a grading provider."""

from __future__ import annotations

from typing import Any

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from lakequest.config import Settings
from lakequest.db.models import Challenge
from lakequest.errors import GradingError
from lakequest.grading.cache import InMemoryVerdictCache, RedisVerdictCache, VerdictCache, verdict_cache_key
from lakequest.grading.prompts import domain_for_challenge
from lakequest.grading.providers import (
    BaseGradingProvider,
    GeminiGradingProvider,
    HeuristicGradingProvider,
    stored_hint,
)
from lakequest.grading.retry import RetryPolicy, exponential_backoff
from lakequest.grading.schemas import Hint, SubmissionVerdict

logger = structlog.get_logger()


class GradingService:
    """The Grader as seen by the submission and PvP coordinators."""

    def __init__(
        self,
        provider: BaseGradingProvider,
        cache: VerdictCache | None = None,
        retry_policy: RetryPolicy | None = None,
        cache_ttl_seconds: int = 86400,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache_ttl_seconds = cache_ttl_seconds

    @property
    def caches_verdicts(self) -> bool:
        # Heuristic verdicts are cheap and deterministic.
        return self.cache is not None and not isinstance(self.provider, HeuristicGradingProvider)

    async def grade(self, challenge: Challenge, code: str, output: Any) -> SubmissionVerdict:
        """Grade a submission. Raises GradingError when every attempt failed."""
        key = None
        if self.caches_verdicts:
            key = verdict_cache_key(domain_for_challenge(challenge), challenge.id, code)
            try:
                cached = await self.cache.get(key)
            except RedisError:
                logger.warning("verdict_cache_read_failed", challenge_id=challenge.id, key=key, exc_info=True)
                cached = None
            if cached is not None:
                logger.debug("verdict_cache_hit", challenge_id=challenge.id, key=key)
                return SubmissionVerdict.model_validate(cached)

        verdict = await self.retry_policy.run(
            lambda: self.provider.grade(challenge, code, output),
            name="grade",
        )

        if key is not None:
            try:
                await self.cache.set(key, verdict.to_wire(), self.cache_ttl_seconds)
            except RedisError:
                logger.warning("verdict_cache_write_failed", challenge_id=challenge.id, key=key, exc_info=True)
        return verdict

    async def get_hint(self, challenge: Challenge, last_code: str, level: int) -> Hint:
        """Contextual hint at level, falling back to the stored hint if generation fails."""
        if level < 1:
            level = 1
        try:
            return await self.retry_policy.run(
                lambda: self.provider.hint(challenge, last_code or "", level),
                name="hint",
            )
        except GradingError:
            logger.warning("hint_generation_failed", challenge_id=challenge.id, level=level)
            return stored_hint(challenge, level)


def _create_provider(settings: Settings) -> BaseGradingProvider:
    """Create the grading provider based on configuration."""
    if settings.remote_grading_enabled:
        return GeminiGradingProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_api_url,
            timeout_seconds=settings.grading_timeout_seconds,
            output_max_chars=settings.grading_output_max_chars,
        )
    logger.info("remote_grading_disabled", reason="no api key", provider="heuristic")
    return HeuristicGradingProvider()


def create_grading_service(settings: Settings, redis: Redis | None = None) -> GradingService:
    cache: VerdictCache
    if settings.grading_cache_backend == "redis" and redis is not None:
        cache = RedisVerdictCache(redis)
    else:
        cache = InMemoryVerdictCache()
    return GradingService(
        provider=_create_provider(settings),
        cache=cache,
        retry_policy=RetryPolicy(
            max_attempts=settings.grading_max_attempts,
            backoff=exponential_backoff(base=settings.grading_backoff_base_seconds),
        ),
        cache_ttl_seconds=settings.grading_cache_ttl_seconds,
    )
