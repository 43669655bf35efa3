"""Daily login streaks.

On each login:
- no row: streak starts at 1, first-login bonus
- same calendar day: no-op, zero bonus
- previous day: streak + 1, tiered bonus, plus a streak_milestone bonus every 7th day
- any gap: streak resets to 1, longest_streak preserved, base bonus

The whole bonus is applied as one credit_xp() call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lakequest.db.models import Streak, User
from lakequest.gamification.xp_service import commit_xp, credit_xp, get_user
from lakequest.leaderboard.store import LeaderboardStore
from lakequest.locks import critical_section
from lakequest.notifications import create_notification

logger = logging.getLogger(__name__)

BASE_LOGIN_BONUS = 10

# Cumulative add-ons: every threshold reached adds its amount.
STREAK_BONUS_TIERS: list[tuple[int, int]] = [
    (3, 10),
    (7, 20),
    (14, 30),
    (30, 50),
    (60, 100),
    (100, 200),
]

WEEKLY_MILESTONE_DAYS = 7
WEEKLY_MILESTONE_XP_PER_DAY = 10


@dataclass
class StreakResult:
    streak: int
    longest_streak: int
    xp_bonus: int
    continued: bool
    notification: dict[str, Any] | None = field(default=None)


def calculate_streak_bonus(streak_days: int) -> int:
    """Daily bonus for a streak of streak_days. 0 for non-positive input."""
    if streak_days <= 0:
        return 0
    bonus = BASE_LOGIN_BONUS
    for threshold, extra in STREAK_BONUS_TIERS:
        if streak_days >= threshold:
            bonus += extra
    return bonus


def weekly_milestone(streak_days: int) -> dict[str, Any] | None:
    """Extra reward on every 7th consecutive day."""
    if streak_days <= 0 or streak_days % WEEKLY_MILESTONE_DAYS != 0:
        return None
    return {
        "type": "streak_milestone",
        "title": f"{streak_days}-Day Streak!",
        "message": f"Amazing! You've maintained a {streak_days}-day login streak!",
        "xp_bonus": streak_days * WEEKLY_MILESTONE_XP_PER_DAY,
    }


async def check_and_update_streak(
    db: AsyncSession,
    leaderboard: LeaderboardStore,
    user_id: int,
    today: date | None = None,
) -> StreakResult:
    """Advance, keep or reset the user's streak for a login on today (UTC by default)."""
    if today is None:
        today = datetime.now(timezone.utc).date()
    yesterday = today - timedelta(days=1)

    try:
        user = await get_user(db, user_id)

        async with critical_section(db, f"streak:{user_id}"):
            result = await db.execute(
                select(Streak)
                .where(Streak.user_id == user_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            streak = result.scalar_one_or_none()
            now = datetime.now(timezone.utc)
            notification = None

            if streak is None:
                streak = Streak(
                    user_id=user_id,
                    current_streak=1,
                    longest_streak=1,
                    last_login_date=today,
                    streak_bonuses_claimed=0,
                    updated_at=now,
                )
                db.add(streak)
                xp_bonus = BASE_LOGIN_BONUS
            elif streak.last_login_date == today:
                unchanged = StreakResult(
                    streak=streak.current_streak,
                    longest_streak=streak.longest_streak,
                    xp_bonus=0,
                    continued=False,
                )
                # release the row lock
                await db.rollback()
                return unchanged
            elif streak.last_login_date == yesterday:
                streak.current_streak += 1
                streak.longest_streak = max(streak.longest_streak, streak.current_streak)
                streak.streak_bonuses_claimed += 1
                xp_bonus = calculate_streak_bonus(streak.current_streak)

                notification = weekly_milestone(streak.current_streak)
                if notification is not None:
                    xp_bonus += notification["xp_bonus"]
                    await create_notification(
                        db,
                        user_id,
                        "streak_milestone",
                        notification["title"],
                        notification["message"],
                        {"xpBonus": notification["xp_bonus"], "streak": streak.current_streak},
                    )
            else:
                streak.current_streak = 1
                xp_bonus = BASE_LOGIN_BONUS

            streak.last_login_date = today
            streak.updated_at = now
            user.last_login = now
            await db.flush()

            if xp_bonus > 0:
                await credit_xp(
                    db,
                    user_id,
                    xp_bonus,
                    source="streak",
                    source_id=f"streak:{today.isoformat()}",
                    description=f"Login streak day {streak.current_streak}",
                )

            result_value = StreakResult(
                streak=streak.current_streak,
                longest_streak=streak.longest_streak,
                xp_bonus=xp_bonus,
                continued=True,
                notification=notification,
            )
            await commit_xp(db, leaderboard)
    except Exception:
        await db.rollback()
        raise

    logger.info("Streak for user %s: day %d (+%d XP)", user_id, result_value.streak, xp_bonus)
    return result_value


async def get_user_streak(db: AsyncSession, user_id: int) -> dict:
    result = await db.execute(select(Streak).where(Streak.user_id == user_id))
    streak = result.scalar_one_or_none()
    if streak is None:
        return {"current_streak": 0, "longest_streak": 0, "last_login_date": None, "bonuses_claimed": 0}
    return {
        "current_streak": streak.current_streak,
        "longest_streak": streak.longest_streak,
        "last_login_date": streak.last_login_date,
        "bonuses_claimed": streak.streak_bonuses_claimed,
    }


async def get_streak_leaderboard(db: AsyncSession, limit: int = 50) -> list[dict]:
    """Users with an active streak, longest current streak first."""
    result = await db.execute(
        select(User.id, User.username, User.tier, Streak.current_streak, Streak.longest_streak)
        .join(User, Streak.user_id == User.id)
        .where(Streak.current_streak > 0)
        .order_by(Streak.current_streak.desc(), Streak.longest_streak.desc(), User.id)
        .limit(limit)
    )
    return [
        {
            "user_id": row.id,
            "username": row.username,
            "tier": row.tier,
            "current_streak": row.current_streak,
            "longest_streak": row.longest_streak,
        }
        for row in result.all()
    ]
