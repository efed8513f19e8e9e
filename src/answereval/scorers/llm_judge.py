"""LLM-as-judge scorer.

A judge model compares the generated answer with the expected answer on
factual accuracy, completeness, relevance and coherence, and returns a score
in [0, 1] with a short rationale.

The verdict arrives either as a schema-constrained object (providers with
structured output) or as free text expected to embed a JSON object. Both
shapes go through a :class:`JudgeResponseParser`; neither parser raises. A
verdict that cannot be read degrades to the neutral score 0.5, and so does a
failed provider call.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Protocol, Sequence, Tuple

from answereval.config import DEFAULT_JUDGE_MODEL
from answereval.models import JudgeResult
from answereval.providers import generate_object, generate_text, supports_structured_output

logger = logging.getLogger(__name__)

JUDGE_TEMPERATURE = 0.1
NEUTRAL_SCORE = 0.5
EXCERPT_CHARS = 200

_UNIT = {"type": "number", "minimum": 0, "maximum": 1}

JUDGE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "score": {**_UNIT, "description": "Overall score between 0.0 and 1.0"},
        "breakdown": {
            "type": "object",
            "properties": {
                "accuracy": {**_UNIT, "description": "Factual accuracy score 0.0-1.0"},
                "completeness": {**_UNIT, "description": "Completeness score 0.0-1.0"},
                "relevance": {**_UNIT, "description": "Relevance score 0.0-1.0"},
                "coherence": {**_UNIT, "description": "Coherence score 0.0-1.0"},
            },
            "required": ["accuracy", "completeness", "relevance", "coherence"],
            "additionalProperties": False,
        },
        "reason": {"type": "string", "description": "2-3 sentence explanation of the score"},
    },
    "required": ["score", "breakdown", "reason"],
    "additionalProperties": False,
}

JUDGE_PROMPT = """You are an expert evaluator assessing the quality of AI-generated answers.

Your task is to compare a GENERATED ANSWER against an EXPECTED ANSWER for a given QUESTION.

Evaluate based on these criteria:
1. **Factual Accuracy**: Does the generated answer contain correct information?
2. **Completeness**: Does it cover all key points from the expected answer?
3. **Relevance**: Does it directly address the question?
4. **Coherence**: Is it well-structured and easy to understand?

---

QUESTION:
{question}

---

EXPECTED ANSWER:
{expected_answer}

---

GENERATED ANSWER:
{generated_answer}

---

Scoring guide:
- 0.9-1.0: Excellent - Nearly identical or better than expected
- 0.7-0.9: Good - Covers main points with minor gaps
- 0.5-0.7: Fair - Partially correct but missing key information
- 0.3-0.5: Poor - Significant errors or omissions
- 0.0-0.3: Very Poor - Mostly incorrect or irrelevant"""

FREE_TEXT_INSTRUCTIONS = """

Respond ONLY with JSON:
{"score": 0.0-1.0, "breakdown": {"accuracy": 0.0-1.0, "completeness": 0.0-1.0, "relevance": 0.0-1.0, "coherence": 0.0-1.0}, "reason": "..."}"""


def build_judge_prompt(question: str, generated_answer: str, expected_answer: str) -> str:
    return JUDGE_PROMPT.format(
        question=question,
        expected_answer=expected_answer,
        generated_answer=generated_answer,
    )


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if isinstance(value, (int, float)) and math.isfinite(value):
        return float(value)
    return None


def _excerpt(raw: str) -> str:
    return raw[:EXCERPT_CHARS]


class JudgeResponseParser(Protocol):
    def parse(self, raw: Any) -> JudgeResult: ...


# Ordered (pattern, extractor) table scanned when no JSON object can be read.
_SCORE_PATTERNS: List[Tuple[Pattern[str], Callable[[re.Match], str]]] = [
    (re.compile(r"score[\"']?\s*[:=]\s*[\"']?([0-9]*\.?[0-9]+)", re.IGNORECASE), lambda m: m.group(1)),
    (re.compile(r"([0-9]*\.?[0-9]+)\s*/\s*1(?:\.0+)?\b"), lambda m: m.group(1)),
    (re.compile(r"([0-9]*\.?[0-9]+)\s+out\s+of\s+1(?:\.0+)?\b", re.IGNORECASE), lambda m: m.group(1)),
    (re.compile(r"rating[\"']?\s*[:=]\s*[\"']?([0-9]*\.?[0-9]+)", re.IGNORECASE), lambda m: m.group(1)),
]

_JSON_SPAN_RE = re.compile(r"\{[\s\S]*\}")


@dataclass
class FreeTextJudgeParser:
    """Extract a verdict from free text: embedded JSON first, then score patterns."""

    patterns: Sequence[Tuple[Pattern[str], Callable[[re.Match], str]]] = tuple(_SCORE_PATTERNS)

    def parse(self, raw: Any) -> JudgeResult:
        text = raw if isinstance(raw, str) else str(raw)
        parsed = self._find_json(text)
        if parsed is not None:
            return self.from_mapping(parsed, text)

        score = self._scan_patterns(text)
        if score is not None:
            return JudgeResult(score=score, reason=_excerpt(text))

        logger.warning("Could not parse judge response; using neutral score")
        return JudgeResult(score=NEUTRAL_SCORE, reason=_excerpt(text))

    @staticmethod
    def _find_json(text: str) -> Optional[Mapping[str, Any]]:
        match = _JSON_SPAN_RE.search(text)
        if match is None:
            return None
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
        return parsed if isinstance(parsed, dict) else None

    def _scan_patterns(self, text: str) -> Optional[float]:
        for pattern, extract in self.patterns:
            for match in pattern.finditer(text):
                value = _as_number(extract(match))
                if value is not None and 0.0 <= value <= 1.0:
                    return value
        return None

    @staticmethod
    def from_mapping(data: Mapping[str, Any], raw: str = "") -> JudgeResult:
        """Score from ``score``, else the mean of ``breakdown``, else neutral."""
        reason = data.get("reason")
        reason = str(reason) if reason else (_excerpt(raw) or "No reason provided")

        score = _as_number(data.get("score"))
        if score is None:
            breakdown = data.get("breakdown")
            if isinstance(breakdown, dict):
                values = [v for v in map(_as_number, breakdown.values()) if v is not None]
                if values:
                    score = sum(values) / len(values)
        if score is None:
            return JudgeResult(score=NEUTRAL_SCORE, reason=reason)
        return JudgeResult(score=_clamp(score), reason=reason)


class StructuredJudgeParser:
    """Trust a schema-validated object; clamp the score as a last safety net."""

    def parse(self, raw: Any) -> JudgeResult:
        if not isinstance(raw, dict):
            return FreeTextJudgeParser().parse(raw)
        return FreeTextJudgeParser.from_mapping(raw, json.dumps(raw))


def default_judge_model() -> str:
    return os.environ.get("LLM_JUDGE_MODEL") or DEFAULT_JUDGE_MODEL


async def calculate_llm_judge_score(
    question: str,
    generated_answer: str,
    expected_answer: str,
    judge_model: Optional[str] = None,
    *,
    structured: Optional[bool] = None,
) -> JudgeResult:
    """Judge ``generated_answer`` against ``expected_answer``. Never raises.

    ``structured`` forces or disables schema-constrained generation; by
    default it is used whenever the judge's provider supports it.
    """
    model = judge_model or default_judge_model()
    logger.debug("Judging with model %s", model)

    prompt = build_judge_prompt(question, generated_answer, expected_answer)
    try:
        use_structured = supports_structured_output(model) if structured is None else structured
        if use_structured:
            obj = await generate_object(
                model, prompt, JUDGE_SCHEMA,
                temperature=JUDGE_TEMPERATURE, schema_name="judge_evaluation",
            )
            result = StructuredJudgeParser().parse(obj)
        else:
            text = await generate_text(
                model, prompt + FREE_TEXT_INSTRUCTIONS, temperature=JUDGE_TEMPERATURE,
            )
            result = FreeTextJudgeParser().parse(text)
    except Exception as exc:
        logger.error("Judge evaluation failed: %s", exc)
        return JudgeResult(
            score=NEUTRAL_SCORE,
            reason=f"Evaluation failed: {exc}. Defaulting to neutral score.",
        )

    logger.debug("Judge score: %.2f", result.score)
    return result


async def batch_calculate_llm_judge_scores(
    evaluations: Sequence[Mapping[str, str]],
    judge_model: Optional[str] = None,
    *,
    concurrency: int = 3,
) -> List[JudgeResult]:
    """Judge many answers, at most ``concurrency`` at a time, preserving order.

    Each evaluation needs ``question``, ``generated_answer`` and ``expected_answer``.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    semaphore = asyncio.Semaphore(concurrency)

    async def _judge(item: Mapping[str, str]) -> JudgeResult:
        async with semaphore:
            return await calculate_llm_judge_score(
                item["question"], item["generated_answer"], item["expected_answer"],
                judge_model,
            )

    return list(await asyncio.gather(*(_judge(e) for e in evaluations)))
