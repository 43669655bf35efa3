"""Badge catalog.

Each badge is a BadgeRule: a tagged variant evaluated by one generic function
over a UserStats snapshot. Threshold kinds cover the common cases; anything
else is an explicit ``custom`` rule naming a predicate in CUSTOM_PREDICATES.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

PERFECT_SCORE = 100
SPEED_DEMON_SECONDS = 60
PYTHON_ISLAND = "python_peninsula"


@dataclass(frozen=True)
class UserStats:
    """Point-in-time view of everything a badge or milestone may look at."""

    total_xp: int = 0
    completed_count: int = 0
    perfect_count: int = 0
    fast_solve_count: int = 0
    current_streak: int = 0
    # island_id -> (completed, total)
    island_completion: dict[str, tuple[int, int]] = field(default_factory=dict)

    def island_complete(self, island_id: str) -> bool:
        completed, total = self.island_completion.get(island_id, (0, 0))
        return total > 0 and completed >= total


@dataclass(frozen=True)
class BadgeRule:
    id: str
    name: str
    description: str
    icon: str
    kind: str  # xp_threshold | streak_threshold | count_threshold | custom
    params: dict[str, Any] = field(default_factory=dict)


def _any_island_complete(stats: UserStats) -> bool:
    return any(stats.island_complete(island_id) for island_id in stats.island_completion)


def _python_island_complete(stats: UserStats) -> bool:
    return stats.island_complete(PYTHON_ISLAND)


CUSTOM_PREDICATES: dict[str, Callable[[UserStats], bool]] = {
    "any_island_complete": _any_island_complete,
    "python_island_complete": _python_island_complete,
}

# count_threshold metric -> UserStats attribute
COUNT_METRICS = {
    "completed": "completed_count",
    "perfect": "perfect_count",
    "fast_solves": "fast_solve_count",
}


BADGE_CATALOG: list[BadgeRule] = [
    BadgeRule(
        "first_query", "First Query", "Complete your first SQL challenge", "target",
        "count_threshold", {"metric": "completed", "threshold": 1},
    ),
    BadgeRule(
        "sql_novice", "SQL Novice", "Complete 3 SQL challenges", "database",
        "count_threshold", {"metric": "completed", "threshold": 3},
    ),
    BadgeRule(
        "streak_5", "5-Day Streak", "Maintain a 5-day login streak", "flame",
        "streak_threshold", {"threshold": 5},
    ),
    BadgeRule(
        "streak_30", "Month Champion", "Maintain a 30-day login streak", "flame",
        "streak_threshold", {"threshold": 30},
    ),
    BadgeRule(
        "perfectionist", "Perfectionist", "Complete 10 challenges with perfect score", "award",
        "count_threshold", {"metric": "perfect", "threshold": 10},
    ),
    BadgeRule(
        "speed_demon", "Speed Demon", "Complete a challenge in under 60 seconds", "zap",
        "count_threshold", {"metric": "fast_solves", "threshold": 1},
    ),
    BadgeRule(
        "island_master", "Island Master", "Complete all challenges in an island", "map",
        "custom", {"predicate": "any_island_complete"},
    ),
    BadgeRule(
        "python_master", "Python Master", "Complete all Python Peninsula challenges", "file-code",
        "custom", {"predicate": "python_island_complete"},
    ),
    BadgeRule(
        "xp_1000", "XP Warrior", "Reach 1000 total XP", "star",
        "xp_threshold", {"threshold": 1000},
    ),
    BadgeRule(
        "xp_5000", "XP Legend", "Reach 5000 total XP", "trophy",
        "xp_threshold", {"threshold": 5000},
    ),
]

BADGES_BY_ID: dict[str, BadgeRule] = {rule.id: rule for rule in BADGE_CATALOG}


def evaluate_rule(rule: BadgeRule, stats: UserStats) -> bool:
    """True when stats satisfy the rule. Unknown kinds raise ValueError."""
    if rule.kind == "xp_threshold":
        return stats.total_xp >= rule.params["threshold"]
    if rule.kind == "streak_threshold":
        return stats.current_streak >= rule.params["threshold"]
    if rule.kind == "count_threshold":
        attr = COUNT_METRICS[rule.params["metric"]]
        return getattr(stats, attr) >= rule.params["threshold"]
    if rule.kind == "custom":
        return CUSTOM_PREDICATES[rule.params["predicate"]](stats)
    raise ValueError(f"Unknown badge rule kind: {rule.kind}")


def milestone_reached(milestone_type: str, threshold: int, stats: UserStats) -> bool:
    """Milestones use the same snapshot: xp, challenges or streak against a threshold."""
    if milestone_type == "xp":
        return stats.total_xp >= threshold
    if milestone_type == "challenges":
        return stats.completed_count >= threshold
    if milestone_type == "streak":
        return stats.current_streak >= threshold
    return False
