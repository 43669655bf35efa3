"""Pydantic models for grading verdicts and hints.

Field aliases are camelCase: that is the shape the grading model is asked to
return and the shape cached verdicts are stored in.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class VerdictFeedback(BaseModel):
    correctness: str = ""
    quality: str = ""
    performance: str = ""


class SubmissionVerdict(BaseModel):
    """Structured correctness / quality / performance judgment for one submission."""

    model_config = ConfigDict(populate_by_name=True)

    correct: bool
    correctness_score: int = Field(alias="correctnessScore", ge=0, le=100)
    quality_score: int = Field(alias="qualityScore", ge=0, le=30)
    performance_score: int = Field(alias="performanceScore", ge=0, le=50)
    feedback: VerdictFeedback = Field(default_factory=VerdictFeedback)
    hints: list[str] = []
    encouragement: str = ""

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class Hint(BaseModel):
    level: int
    hint: str
    cost: int = 0
    generated: bool = False
