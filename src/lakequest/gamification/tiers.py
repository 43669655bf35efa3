"""Tier thresholds and computation.

These values MUST match the frontend tier badges exactly.
"""

from __future__ import annotations

TIER_THRESHOLDS: list[dict] = [
    {"tier": "Data Apprentice", "xp_required": 0},
    {"tier": "Pipeline Builder", "xp_required": 2000},
    {"tier": "Code Sorcerer", "xp_required": 5000},
    {"tier": "Data Master", "xp_required": 10000},
]


def compute_tier(total_xp: int) -> str:
    """Tier name for a total XP value."""
    current = TIER_THRESHOLDS[0]["tier"]
    for entry in TIER_THRESHOLDS:
        if total_xp >= entry["xp_required"]:
            current = entry["tier"]
    return current


def tier_progress(total_xp: int) -> dict:
    """Current tier plus how far the user is into it and what comes next."""
    index = 0
    for i, entry in enumerate(TIER_THRESHOLDS):
        if total_xp >= entry["xp_required"]:
            index = i

    current = TIER_THRESHOLDS[index]
    if index == len(TIER_THRESHOLDS) - 1:
        return {
            "tier": current["tier"],
            "next_tier": None,
            "xp_into_tier": total_xp - current["xp_required"],
            "xp_to_next_tier": 0,
        }

    nxt = TIER_THRESHOLDS[index + 1]
    return {
        "tier": current["tier"],
        "next_tier": nxt["tier"],
        "xp_into_tier": total_xp - current["xp_required"],
        "xp_to_next_tier": nxt["xp_required"] - total_xp,
    }
