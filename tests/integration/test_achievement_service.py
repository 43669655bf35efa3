"""Integration tests for badge and milestone evaluation."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from lakequest.db.models import Notification, UserAchievement, UserMilestone, XPLedger
from lakequest.gamification.achievement_service import (
    check_achievements,
    check_milestones,
    get_all_achievements,
    get_user_achievements,
    load_user_stats,
)
from lakequest.gamification.xp_service import commit_xp, credit_xp
from lakequest.submissions.service import submit_challenge


pytestmark = pytest.mark.asyncio

CODE = "SELECT name FROM ships"


async def _notification_count(db, user_id: int, notification_type: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.notification_type == notification_type)
    )
    return result.scalar_one()


class TestUserStats:
    async def test_empty(self, seeded_db, user_id):
        stats = await load_user_stats(seeded_db, user_id)
        assert stats.completed_count == 0
        assert stats.island_completion["sql_shore"] == (0, 10)
        assert stats.island_completion["python_peninsula"] == (0, 3)

    async def test_counts_after_submissions(self, seeded_db, grader, leaderboard, user_id):
        await submit_challenge(seeded_db, grader, leaderboard, user_id, "sql_shore_1", CODE, [], 30)
        await submit_challenge(seeded_db, grader, leaderboard, user_id, "python_peninsula_1", CODE, [], 120)

        stats = await load_user_stats(seeded_db, user_id)
        assert stats.completed_count == 2
        assert stats.perfect_count == 2
        assert stats.fast_solve_count == 1
        assert stats.island_completion["sql_shore"] == (1, 10)
        assert stats.island_completion["python_peninsula"] == (1, 3)


class TestCheckAchievements:
    async def test_first_completion_unlocks(self, seeded_db, grader, leaderboard, user_id):
        await submit_challenge(seeded_db, grader, leaderboard, user_id, "sql_shore_1", CODE, [], 200)

        unlocked = await check_achievements(seeded_db, user_id)
        assert [a.id for a in unlocked] == ["first_query"]
        assert unlocked[0].name == "First Query"
        assert await _notification_count(seeded_db, user_id, "achievement") == 1

    async def test_idempotent(self, seeded_db, grader, leaderboard, user_id):
        await submit_challenge(seeded_db, grader, leaderboard, user_id, "sql_shore_1", CODE, [], 200)

        await check_achievements(seeded_db, user_id)
        assert await check_achievements(seeded_db, user_id) == []

        rows = await seeded_db.execute(select(func.count()).select_from(UserAchievement))
        assert rows.scalar_one() == 1
        assert await _notification_count(seeded_db, user_id, "achievement") == 1

    async def test_fast_solve_unlocks_speed_demon(self, seeded_db, grader, leaderboard, user_id):
        await submit_challenge(seeded_db, grader, leaderboard, user_id, "sql_shore_1", CODE, [], 30)

        unlocked = {a.id for a in await check_achievements(seeded_db, user_id)}
        assert unlocked == {"first_query", "speed_demon"}

    async def test_python_island_completion(self, seeded_db, grader, leaderboard, user_id):
        for challenge_id in ("python_peninsula_1", "python_peninsula_2", "python_peninsula_3"):
            await submit_challenge(seeded_db, grader, leaderboard, user_id, challenge_id, CODE, [], 200)

        unlocked = {a.id for a in await check_achievements(seeded_db, user_id)}
        assert {"first_query", "sql_novice", "island_master", "python_master"} <= unlocked

    async def test_nothing_for_new_user(self, seeded_db, user_id):
        assert await check_achievements(seeded_db, user_id) == []


class TestCheckMilestones:
    async def test_xp_milestone_pays_reward(self, seeded_db, leaderboard, user_id, total_xp):
        await credit_xp(seeded_db, user_id, 500, source="test", source_id="seed")
        await commit_xp(seeded_db, leaderboard)

        unlocked = await check_milestones(seeded_db, leaderboard, user_id)

        assert [m.id for m in unlocked] == ["xp_500"]
        assert unlocked[0].xp_reward == 50
        assert await total_xp(user_id) == 550
        assert await leaderboard.score(str(user_id)) == 550
        assert await _notification_count(seeded_db, user_id, "milestone") == 1

        ledger = await seeded_db.execute(
            select(XPLedger.source, XPLedger.source_id).where(XPLedger.user_id == user_id, XPLedger.source == "milestone")
        )
        assert ledger.all() == [("milestone", "xp_500")]

    async def test_milestones_idempotent(self, seeded_db, leaderboard, user_id, total_xp):
        await credit_xp(seeded_db, user_id, 500, source="test", source_id="seed")
        await commit_xp(seeded_db, leaderboard)

        await check_milestones(seeded_db, leaderboard, user_id)
        assert await check_milestones(seeded_db, leaderboard, user_id) == []
        assert await total_xp(user_id) == 550

        rows = await seeded_db.execute(select(func.count()).select_from(UserMilestone))
        assert rows.scalar_one() == 1

    async def test_challenge_milestone(self, seeded_db, grader, leaderboard, user_id):
        for n in range(1, 6):
            await submit_challenge(seeded_db, grader, leaderboard, user_id, f"sql_shore_{n}", CODE, [], 200)

        unlocked = {m.id for m in await check_milestones(seeded_db, leaderboard, user_id)}
        # five completions are also worth well over 500 XP
        assert {"challenges_5", "xp_500"} <= unlocked
        assert "challenges_10" not in unlocked

    async def test_none_reached(self, seeded_db, leaderboard, user_id):
        assert await check_milestones(seeded_db, leaderboard, user_id) == []


class TestAchievementQueries:
    async def test_catalog_with_status(self, seeded_db, grader, leaderboard, user_id):
        await submit_challenge(seeded_db, grader, leaderboard, user_id, "sql_shore_1", CODE, [], 200)
        await check_achievements(seeded_db, user_id)

        catalog = await get_all_achievements(seeded_db, user_id)
        assert len(catalog) == 10
        status = {entry["id"]: entry["unlocked"] for entry in catalog}
        assert status["first_query"] is True
        assert status["xp_5000"] is False

        mine = await get_user_achievements(seeded_db, user_id)
        assert [entry["id"] for entry in mine] == ["first_query"]
