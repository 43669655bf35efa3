"""Global XP leaderboard queries and rebuild."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lakequest.db.models import User
from lakequest.leaderboard.store import LeaderboardStore

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100


async def get_leaderboard(
    db: AsyncSession,
    leaderboard: LeaderboardStore,
    page: int = 1,
    per_page: int = 50,
    current_user_id: int | None = None,
) -> dict:
    """Get a page of the leaderboard, enriched with username and tier."""
    page = max(page, 1)
    per_page = max(1, min(per_page, MAX_PER_PAGE))
    start = (page - 1) * per_page
    end = start + per_page - 1

    entries = await leaderboard.top(start, end)
    total = await leaderboard.count()
    if not entries:
        return {"entries": [], "total": total, "page": page, "per_page": per_page}

    user_ids = [int(member) for member, _ in entries]
    result = await db.execute(select(User.id, User.username, User.tier).where(User.id.in_(user_ids)))
    profiles = {row.id: row for row in result.all()}

    results = []
    for offset, (member, score) in enumerate(entries):
        user_id = int(member)
        profile = profiles.get(user_id)
        results.append({
            "rank": start + offset + 1,
            "user_id": user_id,
            "username": profile.username if profile else f"user-{user_id}",
            "tier": profile.tier if profile else None,
            "total_xp": int(score),
            "is_current_user": user_id == current_user_id if current_user_id else False,
        })

    return {"entries": results, "total": total, "page": page, "per_page": per_page}


async def get_user_rank(leaderboard: LeaderboardStore, user_id: int) -> dict:
    """1-based rank, score and percentile. Unranked users get rank 0."""
    member = str(user_id)
    rank = await leaderboard.rank(member)
    score = await leaderboard.score(member)
    total = await leaderboard.count()

    if rank is None:
        return {"rank": 0, "total_xp": 0, "total": total, "percentile": 0}

    return {
        "rank": rank + 1,
        "total_xp": int(score or 0),
        "total": total,
        "percentile": round(100 - ((rank + 1) / total * 100), 2) if total > 0 else 0,
    }


async def rebuild_leaderboard(db: AsyncSession, leaderboard: LeaderboardStore) -> int:
    """Replace the cached ranking with users.total_xp. Returns the number of members."""
    result = await db.execute(select(User.id, User.total_xp).where(User.total_xp > 0))
    scores = {str(user_id): float(total_xp) for user_id, total_xp in result.all()}
    await leaderboard.replace_all(scores)
    logger.info("Rebuilt leaderboard with %d members", len(scores))
    return len(scores)
