"""Unit tests for the score engine: base points, speed bonus, cap and XP multiplier."""

from __future__ import annotations

import dataclasses

import pytest

from lakequest.grading.schemas import SubmissionVerdict
from lakequest.scoring.score_engine import (
    MAX_SCORE,
    calculate_score,
    calculate_xp,
    clamp_difficulty,
    score_submission,
    time_bonus,
)


def _verdict(correct: bool, correctness: int, quality: int, performance: int) -> SubmissionVerdict:
    return SubmissionVerdict(
        correct=correct,
        correctness_score=correctness,
        quality_score=quality,
        performance_score=performance,
    )


class TestTimeBonus:
    """+20 under 5 minutes, +10 under 10 minutes, correct answers only."""

    def test_fast_correct(self):
        assert time_bonus(True, 120) == 20

    def test_just_under_five_minutes(self):
        assert time_bonus(True, 299.9) == 20

    def test_exactly_five_minutes_gets_lower_tier(self):
        assert time_bonus(True, 300) == 10

    def test_under_ten_minutes(self):
        assert time_bonus(True, 450) == 10

    def test_exactly_ten_minutes_gets_nothing(self):
        assert time_bonus(True, 600) == 0

    def test_incorrect_never_gets_bonus(self):
        assert time_bonus(False, 5) == 0


class TestCalculateScore:
    def test_worked_example_fast(self):
        """100 + 20 + 30 in 200s = 150 + 20 = 170."""
        assert calculate_score(_verdict(True, 100, 20, 30), 200) == 170

    def test_worked_example_slow(self):
        """Same verdict after 700s earns no bonus."""
        assert calculate_score(_verdict(True, 100, 20, 30), 700) == 150

    def test_capped_at_max(self):
        """180 base + 20 bonus lands exactly on the cap."""
        assert calculate_score(_verdict(True, 100, 30, 50), 10) == MAX_SCORE

    def test_incorrect_scores_base_only(self):
        assert calculate_score(_verdict(False, 30, 20, 30), 10) == 80

    def test_zero_verdict(self):
        assert calculate_score(_verdict(False, 0, 0, 0), 0) == 0


class TestCalculateXP:
    def test_difficulty_two(self):
        """170 * 1.2 = 204."""
        assert calculate_xp(170, 2) == 204

    def test_difficulty_two_no_bonus(self):
        """150 * 1.2 = 180."""
        assert calculate_xp(150, 2) == 180

    def test_difficulty_three_is_exact(self):
        """150 * 1.3 is 195 despite float noise in 1.3."""
        assert calculate_xp(150, 3) == 195

    def test_floors_fractional_xp(self):
        """33 * 1.1 = 36.3 -> 36."""
        assert calculate_xp(33, 1) == 36

    def test_max_score_max_difficulty(self):
        assert calculate_xp(200, 5) == 300

    def test_zero_score_zero_xp(self):
        assert calculate_xp(0, 4) == 0


class TestDifficultyClamp:
    def test_below_range(self):
        assert clamp_difficulty(0) == 1
        assert clamp_difficulty(-3) == 1

    def test_above_range(self):
        assert clamp_difficulty(9) == 5

    def test_in_range(self):
        for d in range(1, 6):
            assert clamp_difficulty(d) == d

    def test_out_of_range_difficulty_used_clamped(self):
        assert calculate_xp(100, 12) == calculate_xp(100, 5)


class TestScoreSubmission:
    def test_combines_score_and_xp(self):
        result = score_submission(_verdict(True, 100, 20, 30), 200, 2)
        assert result.score == 170
        assert result.xp == 204

    def test_result_is_immutable(self):
        result = score_submission(_verdict(True, 100, 20, 30), 200, 2)
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.score = 1  # type: ignore[misc]
