"""Score engine: verdict + elapsed time + difficulty -> bounded score and XP.

Pure functions, no I/O. The same engine scores regular submissions and PvP
submissions, so a PvP score is directly comparable to a challenge score.

    base  = correctness + quality + performance          (<= 180)
    bonus = +20 if correct and under 5 min, +10 if under 10 min
    score = clamp(base + bonus, 0, 200)
    xp    = floor(score * (1 + difficulty * 0.1))        (difficulty in 1..5)
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from lakequest.grading.schemas import SubmissionVerdict

MAX_SCORE = 200
MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5

# (seconds under which the bonus applies, bonus points), checked in order
TIME_BONUS: list[tuple[int, int]] = [
    (300, 20),
    (600, 10),
]


@dataclass(frozen=True)
class ScoreResult:
    score: int
    xp: int


def time_bonus(correct: bool, time_spent_seconds: float) -> int:
    """Speed bonus for a correct answer. Incorrect answers never earn one."""
    if not correct:
        return 0
    for limit, bonus in TIME_BONUS:
        if time_spent_seconds < limit:
            return bonus
    return 0


def calculate_score(verdict: SubmissionVerdict, time_spent_seconds: float) -> int:
    base = verdict.correctness_score + verdict.quality_score + verdict.performance_score
    total = base + time_bonus(verdict.correct, time_spent_seconds)
    return max(0, min(total, MAX_SCORE))


def clamp_difficulty(difficulty: int) -> int:
    return max(MIN_DIFFICULTY, min(int(difficulty), MAX_DIFFICULTY))


def calculate_xp(score: int, difficulty: int) -> int:
    """XP for an already-capped score. 170 at difficulty 2 -> 204."""
    multiplier = 1 + clamp_difficulty(difficulty) * 0.1
    # strip float noise before flooring (1 + 3 * 0.1 is not exactly 1.3)
    return math.floor(round(score * multiplier, 6))


def score_submission(verdict: SubmissionVerdict, time_spent_seconds: float, difficulty: int) -> ScoreResult:
    score = calculate_score(verdict, time_spent_seconds)
    return ScoreResult(score=score, xp=calculate_xp(score, difficulty))
