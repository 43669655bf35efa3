"""Grading prompt templates, parameterized by challenge domain.

Both domains ask for the same verdict JSON shape; only the wording differs.
"""

from __future__ import annotations

import json
from typing import Any

from lakequest.db.models import Challenge

SQL_ISLAND = "sql_shore"

DOMAIN_PROMPTS: dict[str, dict[str, str]] = {
    "sql": {
        "tutor": "You are an expert SQL tutor for a data engineering learning platform.",
        "language": "sql",
        "quality": "Is it idiomatic SQL? (Indentation, casing, standard practices)",
        "performance": "Any obvious inefficiencies? (e.g. SELECT * on large tables if not needed, inefficient joins)",
    },
    "python": {
        "tutor": "You are an expert PySpark/Python tutor for a data engineering learning platform.",
        "language": "python",
        "quality": "Is it idiomatic Python / DataFrame code? (Naming, chaining, readability)",
        "performance": "Any obvious inefficiencies? (e.g. collect() on large data, row-wise UDFs where built-ins exist)",
    },
}

VERDICT_SCHEMA = """{
  "correct": boolean,
  "correctnessScore": number (0-100),
  "qualityScore": number (0-30),
  "performanceScore": number (0-50),
  "feedback": {
    "correctness": "string explanation",
    "quality": "string insights",
    "performance": "string optimization suggestions"
  },
  "hints": ["string"],
  "encouragement": "string"
}"""


def domain_for_challenge(challenge: Challenge) -> str:
    """Grading domain from the challenge's island grouping."""
    return "sql" if challenge.island_id == SQL_ISLAND else "python"


def serialize_output(output: Any, max_chars: int = 1000) -> str:
    """JSON-serialize executed output, truncated to max_chars."""
    text = json.dumps(output if output is not None else {}, default=str)
    return text[:max_chars]


def build_validation_prompt(
    domain: str,
    challenge: Challenge,
    code: str,
    output: Any,
    max_chars: int = 1000,
) -> str:
    """Build the verdict prompt for a submission."""
    words = DOMAIN_PROMPTS[domain]
    expected = json.dumps(challenge.expected_output or "Table matching requirements", default=str)
    return f"""{words["tutor"]}
Validate this student's solution.

Challenge Title: {challenge.title}
Description: {challenge.description}
Difficulty: {challenge.difficulty}/5
Expected Output (context): {expected}

Student Code:
```{words["language"]}
{code}
```

Student Execution Output (JSON, truncated to {max_chars} characters):
```json
{serialize_output(output, max_chars)}
```

Analyze for:
1. Correctness: Does it solve the problem?
2. Quality: {words["quality"]}
3. Performance: {words["performance"]}

Return strictly valid JSON matching this schema:
{VERDICT_SCHEMA}
"""


def build_hint_prompt(domain: str, challenge: Challenge, code: str, level: int) -> str:
    """Build a contextual hint prompt. Level 1 is a nudge, 3 is nearly the answer."""
    words = DOMAIN_PROMPTS[domain]
    return f"""{words["tutor"]}
The student is stuck on "{challenge.title}".
Challenge: {challenge.description}
Hint Level: {level} (1=Small nudge, 2=Specific direction, 3=Code snippet/Major clue).

Current Code:
```{words["language"]}
{code}
```

Provide a JSON response:
{{"hint": "The hint text", "level": {level}}}
"""
