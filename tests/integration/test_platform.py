"""End-to-end tests through the Platform container."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta
from typing import Any

import pytest
from sqlalchemy import select

from lakequest.database import get_session_factory
from lakequest.db.models import Challenge, UserMilestone
from lakequest.errors import GradingError, GradingTransientError
from lakequest.grading.providers import BaseGradingProvider, stored_hint
from lakequest.grading.retry import RetryPolicy
from lakequest.grading.schemas import Hint, SubmissionVerdict
from lakequest.grading.service import GradingService
from lakequest.leaderboard.store import InMemoryLeaderboardStore
from lakequest.platform import Platform
from lakequest.submissions.service import get_challenge_progress


pytestmark = pytest.mark.asyncio

CODE = "SELECT name FROM ships"
BROKEN_CODE = "SELECT nme FROM shps"


class TestSubmitThroughPlatform:
    async def test_submission_reports_new_achievements(self, platform):
        user_id = await platform.register_user("helmsman")

        result = await platform.submit_challenge(user_id, "sql_shore_1", CODE, [{"name": "Aurora"}], 200)

        assert result.score == 170
        assert result.xp_earned == 187
        assert [a.id for a in result.new_achievements] == ["first_query"]

        payload = result.to_dict()
        assert payload["xpEarned"] == 187
        assert payload["isNewCompletion"] is True
        assert payload["validation"]["correctnessScore"] == 100
        assert payload["newAchievements"][0]["id"] == "first_query"

    async def test_failing_hook_does_not_fail_submission(self, platform):
        async def broken(db, user_id):
            raise RuntimeError("badge store offline")

        platform.hooks.hooks[0] = ("achievements", broken)
        user_id = await platform.register_user("deckhand")

        result = await platform.submit_challenge(user_id, "sql_shore_1", CODE, [], 200)

        assert result.xp_earned == 187
        assert result.new_achievements == []
        assert (await platform.get_xp_summary(user_id))["total_xp"] == 187

    async def test_hint_for_level(self, platform):
        user_id = await platform.register_user("cabin_boy")
        hint = await platform.get_hint(user_id, "sql_shore_1", level=2)

        assert hint.level == 2
        assert hint.cost == 10
        assert hint.hint == "The asterisk (*) symbol selects all columns."

    async def test_notifications(self, platform):
        user_id = await platform.register_user("purser")
        await platform.submit_challenge(user_id, "sql_shore_1", CODE, [], 200)

        inbox = await platform.get_notifications(user_id)
        assert inbox["total"] == 1
        assert inbox["notifications"][0]["type"] == "achievement"
        assert await platform.mark_notifications_read(user_id) == 1
        assert (await platform.get_notifications(user_id, unread_only=True))["total"] == 0

    async def test_catalog_queries(self, platform):
        user_id = await platform.register_user("bosun")
        await platform.submit_challenge(user_id, "sql_shore_1", CODE, [], 200)

        assert len(await platform.list_challenges()) == 13
        assert len(await platform.list_challenges("python_peninsula")) == 3
        assert [a["id"] for a in await platform.get_user_achievements(user_id)] == ["first_query"]
        assert len(await platform.get_all_achievements(user_id)) == 10


class TestStreakThroughPlatform:
    async def test_week_of_logins_unlocks_badge_and_milestone(self, platform):
        user_id = await platform.register_user("early_bird")
        start = date(2026, 5, 4)

        for offset in range(7):
            result = await platform.check_and_update_streak(user_id, today=start + timedelta(days=offset))

        assert result.streak == 7
        assert result.xp_bonus == 110

        async with platform.session() as db:
            milestones = await db.execute(select(UserMilestone.milestone_id).where(UserMilestone.user_id == user_id))
            assert milestones.scalars().all() == ["streak_7"]

        badges = {a["id"] for a in await platform.get_user_achievements(user_id)}
        assert badges == {"streak_5"}

        # 10 + 10 + 20 + 20 + 20 + 20 + 110 from logins, 75 from the milestone
        assert (await platform.get_xp_summary(user_id))["total_xp"] == 285
        assert (await platform.get_user_streak(user_id))["longest_streak"] == 7
        assert (await platform.get_streak_leaderboard())[0]["user_id"] == user_id


class TestPvPThroughPlatform:
    async def test_full_match(self, platform, stub_provider, verdict_factory):
        stub_provider.verdicts = [
            verdict_factory(),
            verdict_factory(correct=False, correctness=40, quality=10, performance=10),
        ]
        alice = await platform.register_user("alice")
        bob = await platform.register_user("bob")

        opened = await platform.find_or_create_pvp_match(alice, "sql_shore_5")
        joined = await platform.find_or_create_pvp_match(bob, "sql_shore_5")
        assert opened.is_new and joined.joined
        match_id = opened.match.id

        await platform.submit_pvp_match(match_id, alice, CODE, [], 200)
        result = await platform.submit_pvp_match(match_id, bob, CODE, [], 200)

        assert result.winner_id == alice
        assert (await platform.get_xp_summary(alice))["total_xp"] == 100
        assert (await platform.get_user_rank(alice))["rank"] == 1
        assert (await platform.get_pvp_match(match_id, bob)).player1_code == CODE
        assert [m.id for m in await platform.get_user_pvp_matches(bob)] == [match_id]
        assert (await platform.get_pvp_leaderboard())[0].user_id == alice
        assert all(c["difficulty"] >= 2 for c in await platform.get_pvp_challenges())

    async def test_cancel(self, platform):
        alice = await platform.register_user("alice")
        opened = await platform.find_or_create_pvp_match(alice, "sql_shore_5")
        cancelled = await platform.cancel_pvp_match(opened.match.id, alice)
        assert cancelled.status == "cancelled"


class TestLeaderboardThroughPlatform:
    async def test_rebuild_after_cache_loss(self, platform):
        user_id = await platform.register_user("navigator_2")
        await platform.submit_challenge(user_id, "sql_shore_1", CODE, [], 200)

        await platform.leaderboard.replace_all({})
        assert (await platform.get_user_rank(user_id))["rank"] == 0

        assert await platform.rebuild_leaderboard() == 1
        page = await platform.get_leaderboard(current_user_id=user_id)
        assert page["entries"][0]["total_xp"] == 187
        assert page["entries"][0]["is_current_user"] is True


class GatedProvider(BaseGradingProvider):
    """Fails BROKEN_CODE once another session is mid-commit; passes everything else."""

    def __init__(self, verdict: SubmissionVerdict, in_flight: asyncio.Event) -> None:
        self.verdict = verdict
        self.in_flight = in_flight

    async def grade(self, challenge: Challenge, code: str, output: Any) -> SubmissionVerdict:
        if code == BROKEN_CODE:
            await asyncio.wait_for(self.in_flight.wait(), timeout=5)
            raise GradingTransientError("model overloaded")
        return self.verdict

    async def hint(self, challenge: Challenge, code: str, level: int) -> Hint:
        return stored_hint(challenge, level)


class SlowLeaderboard(InMemoryLeaderboardStore):
    """Signals when an increment starts, then yields to other tasks before applying it."""

    def __init__(self, in_flight: asyncio.Event) -> None:
        super().__init__()
        self.in_flight = in_flight

    async def increment(self, member: str, amount: float) -> float:
        self.in_flight.set()
        for _ in range(5):
            await asyncio.sleep(0)
        return await super().increment(member, amount)


class TestConcurrentSubmissions:
    async def test_failed_submission_keeps_concurrent_one(self, settings, seeded_db, verdict_factory):
        in_flight = asyncio.Event()
        leaderboard = SlowLeaderboard(in_flight)
        platform = Platform(
            settings=settings,
            session_factory=get_session_factory(),
            grader=GradingService(GatedProvider(verdict_factory(), in_flight), retry_policy=RetryPolicy(max_attempts=1)),
            leaderboard=leaderboard,
            serialize_sessions=True,
        )
        alice = await platform.register_user("alice")
        bob = await platform.register_user("bob")

        results = await asyncio.gather(
            platform.submit_challenge(alice, "sql_shore_1", CODE, [], 200),
            platform.submit_challenge(bob, "sql_shore_1", BROKEN_CODE, [], 200),
            return_exceptions=True,
        )

        assert results[0].xp_earned == 187
        assert isinstance(results[1], GradingError)
        assert (await platform.get_xp_summary(alice))["total_xp"] == 187
        assert (await platform.get_xp_summary(bob))["total_xp"] == 0
        assert await leaderboard.score(str(alice)) == 187
        async with platform.session() as db:
            assert await get_challenge_progress(db, alice, "sql_shore_1") is not None
            assert await get_challenge_progress(db, bob, "sql_shore_1") is None


class TestPlatformLifecycle:
    async def test_create_seed_and_grade_offline(self, settings):
        platform = await Platform.create(settings, create_schema=True)
        try:
            assert platform.serializes_sessions
            seeded = await platform.seed()
            assert seeded == {"challenges": 13, "milestones": 5}
            # seeding twice is harmless
            assert await platform.seed() == seeded

            user_id = await platform.register_user("offline")
            result = await platform.submit_challenge(user_id, "sql_shore_1", CODE, [{"name": "Aurora"}], 100)

            # heuristic: 70 + 20 + 30, +20 speed bonus, difficulty 1
            assert result.score == 140
            assert result.xp_earned == 154
        finally:
            await platform.close()
