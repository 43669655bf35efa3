"""Shared test fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite, one shared
connection), an in-memory leaderboard and a grader that never leaves the
process. Tests that run sessions side by side use file_database instead,
where each session has its own connection.
"""

from __future__ import annotations

import contextlib
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lakequest.challenges.seed import seed_challenges, seed_milestones
from lakequest.config import Settings
from lakequest.database import close_db, create_tables, get_session, get_session_factory, init_db
from lakequest.db.models import Challenge, User
from lakequest.errors import GradingTransientError
from lakequest.gamification.xp_service import create_user
from lakequest.grading.providers import BaseGradingProvider, HeuristicGradingProvider, stored_hint
from lakequest.grading.retry import RetryPolicy
from lakequest.grading.schemas import Hint, SubmissionVerdict, VerdictFeedback
from lakequest.grading.service import GradingService
from lakequest.leaderboard.store import InMemoryLeaderboardStore
from lakequest.platform import Platform

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def build_verdict(
    correct: bool = True,
    correctness: int = 100,
    quality: int = 20,
    performance: int = 30,
) -> SubmissionVerdict:
    return SubmissionVerdict(
        correct=correct,
        correctness_score=correctness,
        quality_score=quality,
        performance_score=performance,
        feedback=VerdictFeedback(correctness="ok", quality="ok", performance="ok"),
    )


class StubGradingProvider(BaseGradingProvider):
    """Returns queued verdicts in order (the last one repeats), or raises error."""

    def __init__(self, verdicts: list[SubmissionVerdict] | None = None, error: Exception | None = None) -> None:
        self.verdicts = list(verdicts or [build_verdict()])
        self.error = error
        self.calls = 0

    async def grade(self, challenge: Challenge, code: str, output: Any) -> SubmissionVerdict:
        self.calls += 1
        if self.error is not None:
            raise self.error
        if len(self.verdicts) > 1:
            return self.verdicts.pop(0)
        return self.verdicts[0]

    async def hint(self, challenge: Challenge, code: str, level: int) -> Hint:
        return stored_hint(challenge, level)


async def _no_sleep(_delay: float) -> None:
    return None


def make_grader(provider: BaseGradingProvider, max_attempts: int = 3) -> GradingService:
    """Grading service with instant retries and no cache."""
    return GradingService(provider=provider, retry_policy=RetryPolicy(max_attempts=max_attempts, sleep=_no_sleep))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        leaderboard_backend="memory",
        grading_cache_backend="memory",
        gemini_api_key="",
        log_format="console",
    )


@pytest.fixture
def verdict_factory() -> Callable[..., SubmissionVerdict]:
    return build_verdict


@pytest.fixture
def stub_provider() -> StubGradingProvider:
    return StubGradingProvider()


@pytest.fixture
def grader(stub_provider: StubGradingProvider) -> GradingService:
    return make_grader(stub_provider)


@pytest.fixture
def failing_grader() -> GradingService:
    return make_grader(StubGradingProvider(error=GradingTransientError("upstream unavailable")))


@pytest.fixture
def heuristic_grader() -> GradingService:
    return make_grader(HeuristicGradingProvider())


@pytest.fixture
def leaderboard() -> InMemoryLeaderboardStore:
    return InMemoryLeaderboardStore()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema per test."""
    await init_db(TEST_DATABASE_URL)
    await create_tables()
    yield
    await close_db()


@pytest_asyncio.fixture
async def file_database(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Seeded SQLite file database; yields the session factory."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'lakequest.db'}")
    await create_tables()
    factory = get_session_factory()
    async with factory() as db:
        await seed_challenges(db)
        await seed_milestones(db)
    yield factory
    await close_db()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session."""
    async with contextlib.aclosing(get_session()) as sessions:
        async for session in sessions:
            yield session
            break


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """DB session with challenges and milestones seeded."""
    await seed_challenges(db_session)
    await seed_milestones(db_session)
    return db_session


@pytest_asyncio.fixture
async def user_id(seeded_db: AsyncSession) -> int:
    created = await create_user(seeded_db, "navigator")
    await seeded_db.commit()
    return created.id


@pytest_asyncio.fixture
async def opponent_id(seeded_db: AsyncSession) -> int:
    created = await create_user(seeded_db, "corsair")
    await seeded_db.commit()
    return created.id


@pytest_asyncio.fixture
async def platform(settings: Settings, seeded_db: AsyncSession, grader, leaderboard) -> Platform:
    """Platform over the test database with the stub grader and in-memory leaderboard."""
    return Platform(
        settings=settings,
        session_factory=get_session_factory(),
        grader=grader,
        leaderboard=leaderboard,
        serialize_sessions=True,
    )


@pytest.fixture
def total_xp(seeded_db: AsyncSession) -> Callable[[int], Any]:
    """Read users.total_xp straight from the table (bypasses the identity map)."""

    async def _read(user_id: int) -> int:
        result = await seeded_db.execute(select(User.total_xp).where(User.id == user_id))
        return result.scalar_one()

    return _read
