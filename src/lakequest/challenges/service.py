"""Read-only access to the seeded challenge catalog."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lakequest.db.models import Challenge
from lakequest.errors import NotFoundError


async def get_challenge(db: AsyncSession, challenge_id: str) -> Challenge:
    """Fetch a challenge or raise NotFoundError."""
    result = await db.execute(select(Challenge).where(Challenge.id == challenge_id))
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise NotFoundError(f"Challenge {challenge_id} not found")
    return challenge


async def list_challenges(db: AsyncSession, island_id: str | None = None) -> list[Challenge]:
    """Challenges ordered by island, then by their position within it."""
    query = select(Challenge)
    if island_id is not None:
        query = query.where(Challenge.island_id == island_id)
    result = await db.execute(query.order_by(Challenge.island_id, Challenge.order_index))
    return list(result.scalars().all())

