"""Asynchronous two-player matches on a single challenge.

Matchmaking:
1. A user with a live match on the challenge gets it back unchanged
2. Otherwise join the oldest unexpired pending match of another user (row locked)
3. Otherwise open a new pending match

Submissions are graded and scored exactly like challenge submissions, but only
the match row is written: no UserProgress and no challenge XP. The second
submission resolves the match and pays the winner a flat bonus.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from lakequest.challenges.service import get_challenge
from lakequest.db.models import Challenge, PvPMatch, User
from lakequest.errors import ConflictError, NotFoundError
from lakequest.gamification.xp_service import commit_xp, credit_xp, get_user
from lakequest.grading.service import GradingService
from lakequest.leaderboard.store import LeaderboardStore
from lakequest.locks import critical_section
from lakequest.notifications import create_notification
from lakequest.pvp.schemas import FindMatchResult, MatchSubmitResult, MatchView, PvPLeaderboardEntry
from lakequest.pvp.state import ACTIVE, CANCELLED, COMPLETED, PENDING, decide_winner, validate_transition
from lakequest.scoring.score_engine import score_submission
from lakequest.submissions.service import validate_submission

logger = logging.getLogger(__name__)

PVP_MIN_DIFFICULTY = 2
DEFAULT_WIN_XP = 100
DEFAULT_PENDING_TTL = timedelta(hours=1)
DEFAULT_ACTIVE_TTL = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _usernames(db: AsyncSession, *user_ids: int | None) -> dict[int, str]:
    ids = [uid for uid in user_ids if uid is not None]
    if not ids:
        return {}
    result = await db.execute(select(User.id, User.username).where(User.id.in_(ids)))
    return dict(result.all())


async def _to_view(db: AsyncSession, match: PvPMatch, viewer_id: int | None) -> MatchView:
    """Render a match for viewer_id, hiding the opponent's code and score until completed."""
    challenge = await get_challenge(db, match.challenge_id)
    names = await _usernames(db, match.player1_id, match.player2_id)

    view = MatchView(
        id=match.id,
        challenge_id=match.challenge_id,
        challenge_title=challenge.title,
        difficulty=challenge.difficulty,
        status=match.status,
        player1_id=match.player1_id,
        player1_username=names.get(match.player1_id, ""),
        player2_id=match.player2_id,
        player2_username=names.get(match.player2_id) if match.player2_id is not None else None,
        player1_code=match.player1_code,
        player2_code=match.player2_code,
        player1_score=match.player1_score,
        player2_score=match.player2_score,
        player1_submitted=match.player1_submitted,
        player2_submitted=match.player2_submitted,
        winner_id=match.winner_id,
        created_at=match.created_at,
        expires_at=match.expires_at,
        completed_at=match.completed_at,
    )
    if match.status != COMPLETED:
        if viewer_id == match.player1_id:
            view.player2_code = None
            view.player2_score = None
        elif viewer_id == match.player2_id:
            view.player1_code = None
            view.player1_score = None
    return view


def _is_participant(match: PvPMatch, user_id: int) -> bool:
    return user_id in (match.player1_id, match.player2_id)


async def find_or_create_match(
    db: AsyncSession,
    user_id: int,
    challenge_id: str,
    pending_ttl: timedelta = DEFAULT_PENDING_TTL,
    active_ttl: timedelta = DEFAULT_ACTIVE_TTL,
) -> FindMatchResult:
    """Return the caller's live match, join someone else's, or open a new one."""
    try:
        await get_challenge(db, challenge_id)
        await get_user(db, user_id)
        now = _utcnow()

        async with critical_section(db, f"pvp:join:{challenge_id}"):
            existing = await db.execute(
                select(PvPMatch)
                .where(
                    or_(PvPMatch.player1_id == user_id, PvPMatch.player2_id == user_id),
                    PvPMatch.challenge_id == challenge_id,
                    or_(
                        PvPMatch.status == ACTIVE,
                        (PvPMatch.status == PENDING) & (PvPMatch.expires_at > now),
                    ),
                )
                .order_by(PvPMatch.created_at.desc())
                .limit(1)
            )
            match = existing.scalar_one_or_none()
            if match is not None:
                view = await _to_view(db, match, user_id)
                await db.commit()
                return FindMatchResult(match=view, is_new=False)

            pending = await db.execute(
                select(PvPMatch)
                .where(
                    PvPMatch.player1_id != user_id,
                    PvPMatch.player2_id.is_(None),
                    PvPMatch.challenge_id == challenge_id,
                    PvPMatch.status == PENDING,
                    PvPMatch.expires_at > now,
                )
                .order_by(PvPMatch.created_at.asc())
                .limit(1)
                .with_for_update()
            )
            match = pending.scalar_one_or_none()
            if match is not None:
                validate_transition(match.status, ACTIVE)
                match.player2_id = user_id
                match.status = ACTIVE
                match.expires_at = now + active_ttl
                await db.flush()
                view = await _to_view(db, match, user_id)
                await db.commit()
                logger.info("User %s joined PvP match %s on %s", user_id, match.id, challenge_id)
                return FindMatchResult(match=view, is_new=False, joined=True)

            match = PvPMatch(
                id=str(uuid.uuid4()),
                challenge_id=challenge_id,
                player1_id=user_id,
                status=PENDING,
                created_at=now,
                expires_at=now + pending_ttl,
            )
            db.add(match)
            await db.flush()
            view = await _to_view(db, match, user_id)
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("User %s opened PvP match %s on %s", user_id, view.id, challenge_id)
    return FindMatchResult(match=view, is_new=True)


def _check_can_submit(match: PvPMatch | None, match_id: str, user_id: int) -> bool:
    """Return True if user_id is player 1. Raises NotFoundError / ConflictError otherwise."""
    if match is None or not _is_participant(match, user_id):
        raise NotFoundError(f"Match {match_id} not found")
    if match.status != ACTIVE:
        raise ConflictError(f"Match {match_id} is not active (status={match.status})")
    is_player1 = match.player1_id == user_id
    already = match.player1_submitted if is_player1 else match.player2_submitted
    if already:
        raise ConflictError(f"Already submitted for match {match_id}")
    return is_player1


async def submit_match(
    db: AsyncSession,
    grader: GradingService,
    leaderboard: LeaderboardStore,
    match_id: str,
    user_id: int,
    code: str,
    output: Any = None,
    time_spent: float = 0,
    win_xp: int = DEFAULT_WIN_XP,
) -> MatchSubmitResult:
    """Grade and record one player's solution; resolve the match on the second submission."""
    try:
        match = await db.get(PvPMatch, match_id)
        _check_can_submit(match, match_id, user_id)
        validate_submission(match.challenge_id, code, time_spent)

        challenge = await get_challenge(db, match.challenge_id)
        verdict = await grader.grade(challenge, code, output)
        scored = score_submission(verdict, time_spent, challenge.difficulty)

        async with critical_section(db, f"pvp:match:{match_id}"):
            result = await db.execute(
                select(PvPMatch)
                .where(PvPMatch.id == match_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            match = result.scalar_one_or_none()
            is_player1 = _check_can_submit(match, match_id, user_id)

            if is_player1:
                match.player1_code = code
                match.player1_score = scored.score
                match.player1_submitted = True
                other_submitted = match.player2_submitted
            else:
                match.player2_code = code
                match.player2_score = scored.score
                match.player2_submitted = True
                other_submitted = match.player1_submitted

            if not other_submitted:
                await db.commit()
                logger.info("PvP match %s: user %s submitted (score=%d)", match_id, user_id, scored.score)
                return MatchSubmitResult(
                    submitted=True, match_complete=False, score=scored.score, validation=verdict,
                )

            validate_transition(match.status, COMPLETED)
            winner_id = decide_winner(match.player1_id, match.player1_score, match.player2_id, match.player2_score)
            match.status = COMPLETED
            match.winner_id = winner_id
            match.completed_at = _utcnow()
            await db.flush()

            if winner_id is not None:
                await credit_xp(
                    db,
                    winner_id,
                    win_xp,
                    source="pvp_win",
                    source_id=match_id,
                    description=f"PvP win on {challenge.title}",
                )

            for player_id in (match.player1_id, match.player2_id):
                if winner_id is None:
                    title = "PvP Match: Draw"
                elif winner_id == player_id:
                    title = "PvP Match: Victory!"
                else:
                    title = "PvP Match: Defeat"
                await create_notification(
                    db,
                    player_id,
                    "pvp_result",
                    title,
                    f"{challenge.title}: {match.player1_score} - {match.player2_score}",
                    {
                        "matchId": match_id,
                        "winnerId": winner_id,
                        "player1Score": match.player1_score,
                        "player2Score": match.player2_score,
                        "xpReward": win_xp if winner_id == player_id else 0,
                    },
                )

            player1_score, player2_score = match.player1_score, match.player2_score
            await commit_xp(db, leaderboard)
    except Exception:
        await db.rollback()
        raise

    logger.info("PvP match %s completed: winner=%s (%s-%s)", match_id, winner_id, player1_score, player2_score)
    return MatchSubmitResult(
        submitted=True,
        match_complete=True,
        score=scored.score,
        validation=verdict,
        winner_id=winner_id,
        player1_score=player1_score,
        player2_score=player2_score,
    )


async def get_match(db: AsyncSession, match_id: str, user_id: int) -> MatchView:
    """A participant's view of a match. Non-participants get NotFoundError."""
    match = await db.get(PvPMatch, match_id)
    if match is None or not _is_participant(match, user_id):
        raise NotFoundError(f"Match {match_id} not found")
    return await _to_view(db, match, user_id)


async def cancel_match(db: AsyncSession, match_id: str, user_id: int) -> MatchView:
    """Creator-only cancel of a pending match."""
    try:
        async with critical_section(db, f"pvp:match:{match_id}"):
            result = await db.execute(
                select(PvPMatch)
                .where(PvPMatch.id == match_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            match = result.scalar_one_or_none()
            if match is None or not _is_participant(match, user_id):
                raise NotFoundError(f"Match {match_id} not found")
            if match.player1_id != user_id:
                raise ConflictError("Only the match creator can cancel it")
            validate_transition(match.status, CANCELLED)

            match.status = CANCELLED
            await db.flush()
            view = await _to_view(db, match, user_id)
            await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("PvP match %s cancelled by user %s", match_id, user_id)
    return view


async def get_user_matches(db: AsyncSession, user_id: int, status: str | None = None) -> list[MatchView]:
    """All of a user's matches, newest first."""
    query = select(PvPMatch).where(or_(PvPMatch.player1_id == user_id, PvPMatch.player2_id == user_id))
    if status is not None:
        query = query.where(PvPMatch.status == status)
    result = await db.execute(query.order_by(PvPMatch.created_at.desc()))
    return [await _to_view(db, match, user_id) for match in result.scalars().all()]


async def get_pvp_challenges(db: AsyncSession) -> list[dict]:
    """Challenges eligible for PvP (difficulty 2 and up)."""
    result = await db.execute(
        select(Challenge)
        .where(Challenge.difficulty >= PVP_MIN_DIFFICULTY)
        .order_by(Challenge.difficulty, Challenge.title)
    )
    return [
        {
            "id": c.id,
            "title": c.title,
            "description": c.description,
            "difficulty": c.difficulty,
            "island_id": c.island_id,
            "section_id": c.section_id,
        }
        for c in result.scalars().all()
    ]


async def get_pvp_leaderboard(db: AsyncSession, limit: int = 10) -> list[PvPLeaderboardEntry]:
    """Wins / losses / draws over completed matches, most wins first."""
    wins = func.count(case((PvPMatch.winner_id == User.id, 1)))
    losses = func.count(case(((PvPMatch.winner_id.is_not(None)) & (PvPMatch.winner_id != User.id), 1)))
    draws = func.count(case((PvPMatch.winner_id.is_(None), 1)))

    result = await db.execute(
        select(User.id, User.username, User.tier, wins.label("wins"), losses.label("losses"), draws.label("draws"))
        .join(
            PvPMatch,
            or_(PvPMatch.player1_id == User.id, PvPMatch.player2_id == User.id) & (PvPMatch.status == COMPLETED),
        )
        .group_by(User.id, User.username, User.tier)
        .order_by(wins.desc(), losses.asc(), User.id)
        .limit(limit)
    )
    return [
        PvPLeaderboardEntry(
            user_id=row.id, username=row.username, tier=row.tier,
            wins=row.wins, losses=row.losses, draws=row.draws,
        )
        for row in result.all()
    ]
