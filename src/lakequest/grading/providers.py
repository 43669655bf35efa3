"""Grading providers.

Two interchangeable strategies share one contract:
- GeminiGradingProvider: remote text-generation model, one attempt per call.
- HeuristicGradingProvider: deterministic local fallback used when no API key is set.

Retry and caching are layered on top by GradingService (grading/service.py).
"""

from __future__ import annotations

import asyncio
import json
import re
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from lakequest.db.models import Challenge
from lakequest.errors import GradingTransientError
from lakequest.grading.prompts import build_hint_prompt, build_validation_prompt, domain_for_challenge
from lakequest.grading.schemas import Hint, SubmissionVerdict, VerdictFeedback

logger = structlog.get_logger()

_CODE_FENCE = re.compile(r"```(?:json)?\s*|\s*```")
_WILDCARD_SELECT = re.compile(r"\bSELECT\s+\*")


class BaseGradingProvider(ABC):
    """Turns (challenge, code, executed output) into a verdict."""

    @abstractmethod
    async def grade(self, challenge: Challenge, code: str, output: Any) -> SubmissionVerdict:
        ...

    @abstractmethod
    async def hint(self, challenge: Challenge, code: str, level: int) -> Hint:
        ...


def stored_hint(challenge: Challenge, level: int) -> Hint:
    """The seeded hint for level, or the closest lower level."""
    hints = sorted(challenge.hints or [], key=lambda h: h.get("level", 0))
    chosen = None
    for entry in hints:
        if entry.get("level", 0) <= level:
            chosen = entry
    if chosen is None and hints:
        chosen = hints[0]
    if chosen is None:
        return Hint(level=level, hint="Review the challenge requirements", cost=0)
    return Hint(level=chosen.get("level", level), hint=chosen.get("text", ""), cost=chosen.get("cost", 0))


def output_row_count(output: Any) -> int:
    """Rows in executed output: a bare list, or the 'rows' list of an executor result."""
    if output is None:
        return 0
    if isinstance(output, list):
        return len(output)
    if isinstance(output, dict):
        rows = output.get("rows")
        if isinstance(rows, list):
            return len(rows)
        return 1 if output else 0
    if isinstance(output, str):
        return 1 if output.strip() else 0
    return 1


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text).strip()


class HeuristicGradingProvider(BaseGradingProvider):
    """Deterministic fallback. Crude on purpose; kept stable for parity."""

    async def grade(self, challenge: Challenge, code: str, output: Any) -> SubmissionVerdict:
        code = code or ""
        has_code = bool(code.strip())
        description = (challenge.description or "").lower()
        code_upper = code.upper()

        correctness_score = 70 if output_row_count(output) > 0 else 30

        quality_score = 0
        performance_score = 0
        if has_code:
            if "SELECT" in code_upper and ("FROM" in code_upper or "create" in description):
                quality_score = 20
            if _WILDCARD_SELECT.search(code_upper) and "all columns" not in description:
                performance_score = 15
            else:
                performance_score = 30

        correct = correctness_score >= 60
        return SubmissionVerdict(
            correct=correct,
            correctness_score=correctness_score,
            quality_score=quality_score,
            performance_score=performance_score,
            feedback=VerdictFeedback(
                correctness="Your query produces output!" if correct else "Query may need adjustments.",
                quality="Good SQL structure." if quality_score >= 15 else "Consider improving SQL structure.",
                performance=(
                    "Efficient query." if performance_score >= 25
                    else "Consider being more specific with column selection."
                ),
            ),
            hints=[] if correct else ["Review the challenge requirements", "Check your WHERE clause"],
            encouragement="Great job! Keep going!" if correct else "Keep trying, you're making progress!",
        )

    async def hint(self, challenge: Challenge, code: str, level: int) -> Hint:
        return stored_hint(challenge, level)


class GeminiGradingProvider(BaseGradingProvider):
    """Gemini generateContent over httpx.

    Every failure of a single call (network, HTTP status, hard timeout,
    unexpected envelope, non-JSON or out-of-range verdict) is raised as
    GradingTransientError so the retry policy can decide what to do.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float = 30.0,
        output_max_chars: int = 1000,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.output_max_chars = output_max_chars
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.model}:generateContent"

    async def _post(self, payload: dict) -> dict:
        kwargs = {"params": {"key": self.api_key}, "json": payload, "timeout": self.timeout_seconds}
        if self._http_client is not None:
            response = await self._http_client.post(self.endpoint, **kwargs)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.endpoint, **kwargs)
        response.raise_for_status()
        return response.json()

    async def generate_json(self, prompt: str, temperature: float = 0.1) -> Any:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "responseMimeType": "application/json",
            },
        }
        try:
            data = await asyncio.wait_for(self._post(payload), timeout=self.timeout_seconds)
        except TimeoutError as exc:
            raise GradingTransientError(f"Grading call timed out after {self.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            logger.warning("grading_http_error", model=self.model, error=str(exc))
            raise GradingTransientError(f"Failed to communicate with grading service: {exc}") from exc
        except ValueError as exc:
            raise GradingTransientError("Grading service returned a non-JSON envelope") from exc

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GradingTransientError("Unexpected grading response shape") from exc

        try:
            return json.loads(strip_code_fences(text))
        except json.JSONDecodeError as exc:
            raise GradingTransientError("Grading response was not valid JSON") from exc

    async def grade(self, challenge: Challenge, code: str, output: Any) -> SubmissionVerdict:
        domain = domain_for_challenge(challenge)
        prompt = build_validation_prompt(domain, challenge, code, output, self.output_max_chars)
        raw = await self.generate_json(prompt, temperature=0.1)
        try:
            verdict = SubmissionVerdict.model_validate(raw)
        except ValidationError as exc:
            raise GradingTransientError(f"Malformed verdict: {exc.error_count()} validation errors") from exc

        logger.info(
            "submission_graded",
            challenge_id=challenge.id,
            domain=domain,
            correct=verdict.correct,
            correctness_score=verdict.correctness_score,
        )
        return verdict

    async def hint(self, challenge: Challenge, code: str, level: int) -> Hint:
        domain = domain_for_challenge(challenge)
        raw = await self.generate_json(build_hint_prompt(domain, challenge, code, level), temperature=0.7)
        if not isinstance(raw, dict) or not isinstance(raw.get("hint"), str) or not raw["hint"].strip():
            raise GradingTransientError("Hint response missing 'hint' text")
        return Hint(level=level, hint=raw["hint"], cost=stored_hint(challenge, level).cost, generated=True)
