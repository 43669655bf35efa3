"""Submission coordinator: grade, score and reconcile progress in one transaction.

Flow per submission:
1. Validate input, load challenge and user
2. Grade (before any lock is taken; grading is network-bound)
3. Score via the score engine
4. Lock the (user, challenge) progress row, insert or update it
5. On a first completion, credit XP through credit_xp()
6. Commit with commit_xp(), which also publishes the XP to the leaderboard;
   any failure rolls everything back and propagates

XP is paid once per (user, challenge). A better score on a completed challenge
raises best_score but earns nothing.
"""

from __future__ import annotations

import logging
import numbers
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lakequest.challenges.service import get_challenge
from lakequest.db.models import UserProgress
from lakequest.errors import InvalidSubmissionError
from lakequest.gamification.xp_service import commit_xp, credit_xp, get_user
from lakequest.grading.schemas import SubmissionVerdict
from lakequest.grading.service import GradingService
from lakequest.leaderboard.store import LeaderboardStore
from lakequest.locks import critical_section
from lakequest.scoring.score_engine import score_submission

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 50_000


@dataclass
class SubmissionResult:
    validation: SubmissionVerdict
    score: int
    xp_earned: int
    is_new_completion: bool
    # filled in by post-commit hooks, never by the transaction itself
    new_achievements: list[Any] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "validation": self.validation.to_wire(),
            "score": self.score,
            "xpEarned": self.xp_earned,
            "isNewCompletion": self.is_new_completion,
            "newAchievements": [asdict(a) if is_dataclass(a) else a for a in self.new_achievements],
        }


def validate_submission(challenge_id: str, code: str, time_spent: Any) -> None:
    """Raise InvalidSubmissionError for malformed input. Nothing is written."""
    if not isinstance(challenge_id, str) or not challenge_id.strip():
        raise InvalidSubmissionError("challenge_id is required")
    if not isinstance(code, str) or not code.strip():
        raise InvalidSubmissionError("code must be a non-empty string")
    if len(code) > MAX_CODE_LENGTH:
        raise InvalidSubmissionError(f"code exceeds {MAX_CODE_LENGTH} characters")
    if isinstance(time_spent, bool) or not isinstance(time_spent, numbers.Real):
        raise InvalidSubmissionError("time_spent must be a number of seconds")
    if time_spent < 0:
        raise InvalidSubmissionError("time_spent cannot be negative")


def _progress_lock_key(user_id: int, challenge_id: str) -> str:
    return f"progress:{user_id}:{challenge_id}"


async def submit_challenge(
    db: AsyncSession,
    grader: GradingService,
    leaderboard: LeaderboardStore,
    user_id: int,
    challenge_id: str,
    code: str,
    output: Any,
    time_spent: float,
) -> SubmissionResult:
    """Grade a submission and record it. Raises on any failure with nothing persisted."""
    validate_submission(challenge_id, code, time_spent)
    elapsed = int(time_spent)

    try:
        challenge = await get_challenge(db, challenge_id)
        await get_user(db, user_id)

        verdict = await grader.grade(challenge, code, output)
        scored = score_submission(verdict, time_spent, challenge.difficulty)

        async with critical_section(db, _progress_lock_key(user_id, challenge_id)):
            result = await db.execute(
                select(UserProgress)
                .where(UserProgress.user_id == user_id, UserProgress.challenge_id == challenge_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            progress = result.scalar_one_or_none()
            now = datetime.now(timezone.utc)

            if progress is None:
                progress = UserProgress(
                    user_id=user_id,
                    challenge_id=challenge_id,
                    completed=verdict.correct,
                    score=scored.score,
                    best_score=scored.score,
                    attempts=1,
                    best_time=elapsed,
                    last_code=code,
                    completed_at=now if verdict.correct else None,
                    updated_at=now,
                )
                db.add(progress)
                is_new_completion = verdict.correct
            else:
                is_new_completion = verdict.correct and not progress.completed
                progress.completed = progress.completed or verdict.correct
                progress.score = scored.score
                progress.best_score = max(progress.best_score, scored.score)
                progress.best_time = elapsed if progress.best_time is None else min(progress.best_time, elapsed)
                progress.attempts += 1
                progress.last_code = code
                progress.updated_at = now
                if is_new_completion:
                    progress.completed_at = now

            await db.flush()

            xp_earned = 0
            if is_new_completion:
                await credit_xp(
                    db,
                    user_id,
                    scored.xp,
                    source="challenge",
                    source_id=challenge_id,
                    description=f"Completed {challenge.title}",
                )
                xp_earned = scored.xp

            await commit_xp(db, leaderboard)
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "Submission user=%s challenge=%s correct=%s score=%d xp=%d new=%s",
        user_id, challenge_id, verdict.correct, scored.score, xp_earned, is_new_completion,
    )
    return SubmissionResult(
        validation=verdict,
        score=scored.score,
        xp_earned=xp_earned,
        is_new_completion=is_new_completion,
    )


async def get_challenge_progress(db: AsyncSession, user_id: int, challenge_id: str) -> UserProgress | None:
    result = await db.execute(
        select(UserProgress).where(UserProgress.user_id == user_id, UserProgress.challenge_id == challenge_id)
    )
    return result.scalar_one_or_none()


async def get_user_progress(db: AsyncSession, user_id: int) -> list[UserProgress]:
    """All progress rows for a user, most recently touched first."""
    result = await db.execute(
        select(UserProgress)
        .where(UserProgress.user_id == user_id)
        .order_by(UserProgress.updated_at.desc(), UserProgress.id.desc())
    )
    return list(result.scalars().all())
