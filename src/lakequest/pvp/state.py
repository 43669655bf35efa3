"""PvP match state machine.

    pending -> active -> completed
    pending -> cancelled

Transitions are validated: no skipping states, no going backwards.
"""

from __future__ import annotations

from lakequest.errors import ConflictError

PENDING = "pending"
ACTIVE = "active"
COMPLETED = "completed"
CANCELLED = "cancelled"

VALID_TRANSITIONS: dict[str, list[str]] = {
    PENDING: [ACTIVE, CANCELLED],
    ACTIVE: [COMPLETED],
    COMPLETED: [],
    CANCELLED: [],
}


def validate_transition(current_status: str, target_status: str) -> None:
    """Raise ConflictError if current_status cannot move to target_status."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise ConflictError(
            f"Invalid transition: {current_status} -> {target_status}. "
            f"Valid transitions: {valid}"
        )


def decide_winner(player1_id: int, player1_score: int, player2_id: int, player2_score: int) -> int | None:
    """Higher score wins; equal scores are a draw (None)."""
    if player1_score > player2_score:
        return player1_id
    if player2_score > player1_score:
        return player2_id
    return None
