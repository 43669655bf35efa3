"""Error taxonomy for the submission, gamification and PvP services."""

from __future__ import annotations


class LakeQuestError(Exception):
    """Base class for all domain errors."""


class NotFoundError(LakeQuestError, LookupError):
    """A challenge, user or match does not exist (or is not visible to the caller)."""


class InvalidSubmissionError(LakeQuestError, ValueError):
    """Malformed submission input. Nothing is written."""


class ConflictError(LakeQuestError):
    """The operation is not allowed in the current state (already submitted, not active, ...)."""


class GradingError(LakeQuestError):
    """Grading failed for good. The submission must be rolled back."""


class GradingTransientError(GradingError):
    """A single grading attempt failed (network, timeout, malformed reply). Retryable."""
