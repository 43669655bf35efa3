"""XP crediting shared by challenge completions, milestones, streaks and PvP wins.

Every credit goes through credit_xp():
1. Atomic UPDATE users SET total_xp = total_xp + n (no read-modify-write)
2. Insert into xp_ledger
3. Recompute tier; on change emit a tier_up notification
4. Queue the delta for the leaderboard on the session

The caller owns the transaction and finishes it with commit_xp(), which pushes
the queued deltas (ZINCRBY) and commits. A leaderboard failure raises before
the commit, so the caller rolls the XP back with everything else; a failed
commit reverts the increments already pushed. Queued deltas never outlive the
transaction that produced them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import event, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from lakequest.db.models import User, XPLedger
from lakequest.errors import NotFoundError
from lakequest.gamification.tiers import compute_tier, tier_progress
from lakequest.leaderboard.store import LeaderboardStore
from lakequest.notifications import create_notification

logger = logging.getLogger(__name__)

PENDING_XP_KEY = "lakequest.pending_xp"


@event.listens_for(Session, "after_commit")
@event.listens_for(Session, "after_soft_rollback")
def _drop_pending_xp(session: Session, *args) -> None:
    session.info.pop(PENDING_XP_KEY, None)


def pending_xp(db: AsyncSession) -> dict[str, int]:
    """Leaderboard deltas queued by credit_xp() in the current transaction."""
    return dict(db.info.get(PENDING_XP_KEY, {}))


async def get_user(db: AsyncSession, user_id: int) -> User:
    """Fetch a user or raise NotFoundError."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


async def create_user(db: AsyncSession, username: str) -> User:
    """Create a user with zero XP."""
    user = User(username=username, total_xp=0, tier=compute_tier(0), created_at=datetime.now(timezone.utc))
    db.add(user)
    await db.flush()
    return user


async def credit_xp(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: str,
    source_id: str,
    description: str = "",
) -> int:
    """Credit amount XP to a user and queue the leaderboard delta. Returns the new total."""
    if amount <= 0:
        raise ValueError(f"XP credit must be positive, got {amount}")

    user = await get_user(db, user_id)
    old_tier = user.tier

    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_xp=User.total_xp + amount)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(user, ["total_xp"])

    db.add(XPLedger(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        created_at=datetime.now(timezone.utc),
    ))

    new_tier = compute_tier(user.total_xp)
    if new_tier != old_tier:
        user.tier = new_tier
        await create_notification(
            db,
            user_id,
            "tier_up",
            f"New Tier: {new_tier}!",
            f"You reached {new_tier} with {user.total_xp} XP.",
            {"old_tier": old_tier, "new_tier": new_tier},
        )

    await db.flush()
    queued = db.info.setdefault(PENDING_XP_KEY, {})
    queued[str(user_id)] = queued.get(str(user_id), 0) + amount

    logger.info("Credited %d XP to user %s (%s:%s), total=%d", amount, user_id, source, source_id, user.total_xp)
    return user.total_xp


async def get_xp_summary(db: AsyncSession, user_id: int) -> dict:
    """Total XP and tier progress for a user."""
    user = await get_user(db, user_id)
    return {"total_xp": user.total_xp, **tier_progress(user.total_xp)}


async def commit_xp(db: AsyncSession, leaderboard: LeaderboardStore) -> None:
    """Push queued XP to the leaderboard and commit the transaction."""
    queued = db.info.pop(PENDING_XP_KEY, {})
    applied: list[tuple[str, int]] = []
    try:
        for member, amount in queued.items():
            await leaderboard.increment(member, amount)
            applied.append((member, amount))
        await db.commit()
    except Exception:
        for member, amount in applied:
            try:
                await leaderboard.increment(member, -amount)
            except Exception:
                logger.warning("Could not revert leaderboard increment of %d for %s", amount, member, exc_info=True)
        raise
