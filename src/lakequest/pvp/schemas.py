"""Pydantic result models for PvP operations."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from lakequest.grading.schemas import SubmissionVerdict


class MatchView(BaseModel):
    """A match as seen by one participant. Opponent code and score stay hidden until completed."""

    id: str
    challenge_id: str
    challenge_title: str
    difficulty: int
    status: str
    player1_id: int
    player1_username: str
    player2_id: int | None = None
    player2_username: str | None = None
    player1_code: str | None = None
    player2_code: str | None = None
    player1_score: int | None = None
    player2_score: int | None = None
    player1_submitted: bool = False
    player2_submitted: bool = False
    winner_id: int | None = None
    created_at: datetime
    expires_at: datetime
    completed_at: datetime | None = None


class FindMatchResult(BaseModel):
    match: MatchView
    is_new: bool
    joined: bool = False


class MatchSubmitResult(BaseModel):
    submitted: bool
    match_complete: bool
    score: int
    validation: SubmissionVerdict
    winner_id: int | None = None
    player1_score: int | None = None
    player2_score: int | None = None


class PvPLeaderboardEntry(BaseModel):
    user_id: int
    username: str
    tier: str
    wins: int
    losses: int
    draws: int
