"""Achievement and milestone evaluation with duplicate prevention and notification.

Both checks:
1. Build one UserStats snapshot
2. Skip anything the user already owns
3. For each satisfied rule, insert the unlock row (UNIQUE constraint guards races)
4. Emit a notification; milestones also pay XP through credit_xp()

Each unlock commits on its own, so losing a race on one badge does not undo
the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lakequest.db.models import Challenge, Milestone, Streak, UserAchievement, UserMilestone, UserProgress
from lakequest.gamification.achievement_catalog import (
    BADGE_CATALOG,
    BADGES_BY_ID,
    PERFECT_SCORE,
    SPEED_DEMON_SECONDS,
    UserStats,
    evaluate_rule,
    milestone_reached,
)
from lakequest.gamification.xp_service import commit_xp, credit_xp, get_user
from lakequest.leaderboard.store import LeaderboardStore
from lakequest.notifications import create_notification

logger = logging.getLogger(__name__)


@dataclass
class UnlockedAchievement:
    id: str
    name: str
    description: str
    icon: str
    just_unlocked: bool = True


@dataclass
class UnlockedMilestone:
    id: str
    name: str
    description: str
    xp_reward: int


async def _count_progress(db: AsyncSession, user_id: int, *conditions) -> int:
    result = await db.execute(
        select(func.count()).select_from(UserProgress).where(UserProgress.user_id == user_id, *conditions)
    )
    return result.scalar_one()


async def load_user_stats(db: AsyncSession, user_id: int) -> UserStats:
    """Snapshot of XP, progress counts, streak and per-island completion."""
    user = await get_user(db, user_id)

    completed = await _count_progress(db, user_id, UserProgress.completed.is_(True))
    perfect = await _count_progress(db, user_id, UserProgress.best_score >= PERFECT_SCORE)
    fast = await _count_progress(
        db, user_id, UserProgress.completed.is_(True), UserProgress.best_time < SPEED_DEMON_SECONDS,
    )

    streak_result = await db.execute(select(Streak.current_streak).where(Streak.user_id == user_id))
    current_streak = streak_result.scalar_one_or_none() or 0

    island_result = await db.execute(
        select(Challenge.island_id, func.count(UserProgress.id), func.count(Challenge.id))
        .outerjoin(
            UserProgress,
            and_(
                UserProgress.challenge_id == Challenge.id,
                UserProgress.user_id == user_id,
                UserProgress.completed.is_(True),
            ),
        )
        .group_by(Challenge.island_id)
    )
    islands = {island_id: (done, total) for island_id, done, total in island_result.all()}

    return UserStats(
        total_xp=user.total_xp,
        completed_count=completed,
        perfect_count=perfect,
        fast_solve_count=fast,
        current_streak=current_streak,
        island_completion=islands,
    )


async def _owned_badges(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(select(UserAchievement.badge_id).where(UserAchievement.user_id == user_id))
    return set(result.scalars().all())


async def check_achievements(db: AsyncSession, user_id: int) -> list[UnlockedAchievement]:
    """Award every newly satisfied badge. Returns the badges unlocked by this call."""
    stats = await load_user_stats(db, user_id)
    owned = await _owned_badges(db, user_id)
    unlocked: list[UnlockedAchievement] = []

    for rule in BADGE_CATALOG:
        if rule.id in owned or not evaluate_rule(rule, stats):
            continue

        db.add(UserAchievement(user_id=user_id, badge_id=rule.id, unlocked_at=datetime.now(timezone.utc)))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            continue  # Race condition: badge already awarded

        await create_notification(
            db,
            user_id,
            "achievement",
            f"Achievement Unlocked: {rule.name}!",
            rule.description,
            {"badgeId": rule.id, "icon": rule.icon},
        )
        await db.commit()

        logger.info("Badge %s unlocked for user %s", rule.id, user_id)
        unlocked.append(UnlockedAchievement(id=rule.id, name=rule.name, description=rule.description, icon=rule.icon))

    return unlocked


async def check_milestones(
    db: AsyncSession,
    leaderboard: LeaderboardStore,
    user_id: int,
) -> list[UnlockedMilestone]:
    """Award every newly reached active milestone and pay its XP reward."""
    stats = await load_user_stats(db, user_id)

    owned_result = await db.execute(select(UserMilestone.milestone_id).where(UserMilestone.user_id == user_id))
    owned = set(owned_result.scalars().all())

    milestones_result = await db.execute(
        select(Milestone).where(Milestone.active.is_(True)).order_by(Milestone.sort_order)
    )
    # Plain tuples: a rollback below expires ORM instances.
    candidates = [
        (m.id, m.name, m.description, m.milestone_type, m.threshold, m.xp_reward)
        for m in milestones_result.scalars().all()
        if m.id not in owned
    ]

    unlocked: list[UnlockedMilestone] = []
    for milestone_id, name, description, milestone_type, threshold, xp_reward in candidates:
        if not milestone_reached(milestone_type, threshold, stats):
            continue

        db.add(UserMilestone(user_id=user_id, milestone_id=milestone_id, achieved_at=datetime.now(timezone.utc)))
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            continue

        try:
            if xp_reward > 0:
                await credit_xp(
                    db,
                    user_id,
                    xp_reward,
                    source="milestone",
                    source_id=milestone_id,
                    description=f"Milestone: {name}",
                )
            await create_notification(
                db,
                user_id,
                "milestone",
                f"Milestone Achieved: {name}!",
                description,
                {"milestoneId": milestone_id, "xpReward": xp_reward},
            )
            await commit_xp(db, leaderboard)
        except Exception:
            await db.rollback()
            raise

        logger.info("Milestone %s reached by user %s (+%d XP)", milestone_id, user_id, xp_reward)
        unlocked.append(UnlockedMilestone(id=milestone_id, name=name, description=description, xp_reward=xp_reward))

    return unlocked


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[dict]:
    """Unlocked badges, most recent first."""
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
    )
    achievements = []
    for row in result.scalars().all():
        rule = BADGES_BY_ID.get(row.badge_id)
        achievements.append({
            "id": row.badge_id,
            "name": rule.name if rule else row.badge_id,
            "description": rule.description if rule else "",
            "icon": rule.icon if rule else "award",
            "unlocked_at": row.unlocked_at,
        })
    return achievements


async def get_all_achievements(db: AsyncSession, user_id: int) -> list[dict]:
    """Full catalog with unlock status for the user."""
    result = await db.execute(
        select(UserAchievement.badge_id, UserAchievement.unlocked_at).where(UserAchievement.user_id == user_id)
    )
    unlocked_at = dict(result.all())
    return [
        {
            "id": rule.id,
            "name": rule.name,
            "description": rule.description,
            "icon": rule.icon,
            "unlocked": rule.id in unlocked_at,
            "unlocked_at": unlocked_at.get(rule.id),
        }
        for rule in BADGE_CATALOG
    ]
