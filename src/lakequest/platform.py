"""Application container: wires settings, database, Redis, grader and leaderboard.

The caller-facing contract (the HTTP layer lives elsewhere) is the set of
public coroutine methods on Platform. Each opens its own session; best-effort
side effects run afterwards as post-commit hooks.

When the engine runs every session on one connection (in-memory SQLite),
sessions are handed out one at a time: a rollback on the shared connection
would otherwise discard another session's uncommitted work.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from datetime import date, timedelta
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lakequest import database, notifications, redis_client
from lakequest.challenges.seed import seed_challenges, seed_milestones
from lakequest.challenges import service as challenge_service
from lakequest.config import Settings, get_settings
from lakequest.db.models import Challenge
from lakequest.gamification import achievement_service, streak_service, xp_service
from lakequest.grading.schemas import Hint
from lakequest.grading.service import GradingService, create_grading_service
from lakequest.hooks import HookOutcome, PostCommitHooks
from lakequest.leaderboard import service as leaderboard_service
from lakequest.leaderboard.store import LeaderboardStore, create_leaderboard_store
from lakequest.log import setup_logging
from lakequest.pvp import service as pvp_service
from lakequest.pvp.schemas import FindMatchResult, MatchSubmitResult, MatchView, PvPLeaderboardEntry
from lakequest.submissions import service as submission_service
from lakequest.submissions.service import SubmissionResult

logger = logging.getLogger(__name__)


class Platform:
    """Entry point for every operation the outer layers call."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        grader: GradingService,
        leaderboard: LeaderboardStore,
        redis: Redis | None = None,
        serialize_sessions: bool = False,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.grader = grader
        self.leaderboard = leaderboard
        self.redis = redis
        self._session_lock = asyncio.Lock() if serialize_sessions else None

        self.hooks = PostCommitHooks(self.session)
        self.hooks.register("achievements", achievement_service.check_achievements)
        self.hooks.register("milestones", self._check_milestones)

    @classmethod
    async def create(cls, settings: Settings | None = None, create_schema: bool = False) -> Platform:
        """Initialize the database engine, Redis (when a backend needs it), grader and leaderboard."""
        settings = settings or get_settings()
        setup_logging(settings)
        await database.init_db(settings.database_url)
        if create_schema:
            await database.create_tables()

        redis = None
        if settings.leaderboard_backend == "redis" or settings.grading_cache_backend == "redis":
            redis = await redis_client.init_redis(settings.redis_url)

        platform = cls(
            settings=settings,
            session_factory=database.get_session_factory(),
            grader=create_grading_service(settings, redis),
            leaderboard=create_leaderboard_store(settings.leaderboard_backend, redis, settings.leaderboard_key),
            redis=redis,
            serialize_sessions=database.shares_one_connection(),
        )
        logger.info(
            "Platform ready (grader=%s, leaderboard=%s)",
            type(platform.grader.provider).__name__,
            type(platform.leaderboard).__name__,
        )
        return platform

    @property
    def serializes_sessions(self) -> bool:
        return self._session_lock is not None

    async def close(self) -> None:
        await database.close_db()
        if self.redis is not None:
            await redis_client.close_redis()
            self.redis = None

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        guard = self._session_lock if self._session_lock is not None else contextlib.nullcontext()
        async with guard:
            async with self.session_factory() as db:
                yield db

    async def seed(self) -> dict[str, int]:
        """Seed challenges and milestones (idempotent)."""
        async with self.session() as db:
            challenges = await seed_challenges(db)
            milestones = await seed_milestones(db)
        return {"challenges": challenges, "milestones": milestones}

    async def _check_milestones(self, db: AsyncSession, user_id: int) -> list:
        return await achievement_service.check_milestones(db, self.leaderboard, user_id)

    async def run_hooks(self, user_id: int) -> dict[str, HookOutcome]:
        return await self.hooks.run(user_id)

    # --- Users ---

    async def register_user(self, username: str) -> int:
        async with self.session() as db:
            user = await xp_service.create_user(db, username)
            await db.commit()
            return user.id

    async def get_xp_summary(self, user_id: int) -> dict:
        async with self.session() as db:
            return await xp_service.get_xp_summary(db, user_id)

    async def get_notifications(
        self,
        user_id: int,
        page: int = 1,
        per_page: int = 20,
        unread_only: bool = False,
    ) -> dict:
        async with self.session() as db:
            items, total = await notifications.get_notifications(db, user_id, page, per_page, unread_only)
            return {
                "notifications": [
                    {
                        "id": n.id,
                        "type": n.notification_type,
                        "title": n.title,
                        "message": n.message,
                        "data": n.data,
                        "read": n.read,
                        "created_at": n.created_at,
                    }
                    for n in items
                ],
                "total": total,
            }

    async def mark_notifications_read(self, user_id: int) -> int:
        async with self.session() as db:
            return await notifications.mark_all_as_read(db, user_id)

    # --- Challenges ---

    async def list_challenges(self, island_id: str | None = None) -> list[Challenge]:
        async with self.session() as db:
            return await challenge_service.list_challenges(db, island_id)

    async def submit_challenge(
        self,
        user_id: int,
        challenge_id: str,
        code: str,
        output: Any,
        time_spent: float,
    ) -> SubmissionResult:
        async with self.session() as db:
            result = await submission_service.submit_challenge(
                db, self.grader, self.leaderboard, user_id, challenge_id, code, output, time_spent,
            )

        outcomes = await self.run_hooks(user_id)
        achievements = outcomes.get("achievements")
        if achievements is not None and achievements.ok:
            result.new_achievements = achievements.result
        return result

    async def get_hint(self, user_id: int, challenge_id: str, level: int = 1) -> Hint:
        """Hint for the user's current attempt on a challenge."""
        async with self.session() as db:
            challenge = await challenge_service.get_challenge(db, challenge_id)
            progress = await submission_service.get_challenge_progress(db, user_id, challenge_id)
            last_code = progress.last_code if progress is not None else ""
        return await self.grader.get_hint(challenge, last_code, level)

    # --- Gamification ---

    async def check_achievements(self, user_id: int) -> list[achievement_service.UnlockedAchievement]:
        async with self.session() as db:
            return await achievement_service.check_achievements(db, user_id)

    async def check_and_update_streak(self, user_id: int, today: date | None = None) -> streak_service.StreakResult:
        """Login: advance the streak, then run the post-commit hooks."""
        async with self.session() as db:
            result = await streak_service.check_and_update_streak(db, self.leaderboard, user_id, today=today)
        await self.run_hooks(user_id)
        return result

    async def get_user_streak(self, user_id: int) -> dict:
        async with self.session() as db:
            return await streak_service.get_user_streak(db, user_id)

    async def get_streak_leaderboard(self, limit: int = 50) -> list[dict]:
        async with self.session() as db:
            return await streak_service.get_streak_leaderboard(db, limit)

    async def get_user_achievements(self, user_id: int) -> list[dict]:
        async with self.session() as db:
            return await achievement_service.get_user_achievements(db, user_id)

    async def get_all_achievements(self, user_id: int) -> list[dict]:
        async with self.session() as db:
            return await achievement_service.get_all_achievements(db, user_id)

    # --- Leaderboard ---

    async def get_leaderboard(self, page: int = 1, per_page: int = 50, current_user_id: int | None = None) -> dict:
        async with self.session() as db:
            return await leaderboard_service.get_leaderboard(db, self.leaderboard, page, per_page, current_user_id)

    async def get_user_rank(self, user_id: int) -> dict:
        return await leaderboard_service.get_user_rank(self.leaderboard, user_id)

    async def rebuild_leaderboard(self) -> int:
        async with self.session() as db:
            return await leaderboard_service.rebuild_leaderboard(db, self.leaderboard)

    # --- PvP ---

    async def find_or_create_pvp_match(self, user_id: int, challenge_id: str) -> FindMatchResult:
        async with self.session() as db:
            return await pvp_service.find_or_create_match(
                db,
                user_id,
                challenge_id,
                pending_ttl=timedelta(minutes=self.settings.pvp_pending_ttl_minutes),
                active_ttl=timedelta(hours=self.settings.pvp_active_ttl_hours),
            )

    async def submit_pvp_match(
        self,
        match_id: str,
        user_id: int,
        code: str,
        output: Any = None,
        time_spent: float = 0,
    ) -> MatchSubmitResult:
        async with self.session() as db:
            result = await pvp_service.submit_match(
                db, self.grader, self.leaderboard, match_id, user_id, code, output, time_spent,
                win_xp=self.settings.pvp_win_xp,
            )
        if result.match_complete and result.winner_id is not None:
            await self.run_hooks(result.winner_id)
        return result

    async def get_pvp_match(self, match_id: str, user_id: int) -> MatchView:
        async with self.session() as db:
            return await pvp_service.get_match(db, match_id, user_id)

    async def cancel_pvp_match(self, match_id: str, user_id: int) -> MatchView:
        async with self.session() as db:
            return await pvp_service.cancel_match(db, match_id, user_id)

    async def get_user_pvp_matches(self, user_id: int, status: str | None = None) -> list[MatchView]:
        async with self.session() as db:
            return await pvp_service.get_user_matches(db, user_id, status)

    async def get_pvp_challenges(self) -> list[dict]:
        async with self.session() as db:
            return await pvp_service.get_pvp_challenges(db)

    async def get_pvp_leaderboard(self, limit: int = 10) -> list[PvPLeaderboardEntry]:
        async with self.session() as db:
            return await pvp_service.get_pvp_leaderboard(db, limit)
