"""LakeQuest: submission grading, scoring and gamification core."""

__version__ = "0.1.0"
