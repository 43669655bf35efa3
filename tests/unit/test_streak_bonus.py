"""Unit tests for streak bonus tiers and weekly milestones."""

from __future__ import annotations

from lakequest.gamification.streak_service import BASE_LOGIN_BONUS, calculate_streak_bonus, weekly_milestone


class TestStreakBonus:
    """Base 10, plus every tier threshold reached."""

    def test_non_positive(self):
        assert calculate_streak_bonus(0) == 0
        assert calculate_streak_bonus(-4) == 0

    def test_first_days(self):
        assert calculate_streak_bonus(1) == BASE_LOGIN_BONUS
        assert calculate_streak_bonus(2) == 10

    def test_tier_boundaries(self):
        assert calculate_streak_bonus(3) == 20
        assert calculate_streak_bonus(6) == 20
        assert calculate_streak_bonus(7) == 40
        assert calculate_streak_bonus(14) == 70
        assert calculate_streak_bonus(30) == 120
        assert calculate_streak_bonus(60) == 220
        assert calculate_streak_bonus(100) == 420

    def test_capped_after_last_tier(self):
        assert calculate_streak_bonus(365) == calculate_streak_bonus(100)


class TestWeeklyMilestone:
    def test_every_seventh_day(self):
        milestone = weekly_milestone(7)
        assert milestone["type"] == "streak_milestone"
        assert milestone["xp_bonus"] == 70
        assert milestone["title"] == "7-Day Streak!"

    def test_fourteen(self):
        assert weekly_milestone(14)["xp_bonus"] == 140

    def test_other_days(self):
        for day in (0, 1, 6, 8, 13):
            assert weekly_milestone(day) is None
