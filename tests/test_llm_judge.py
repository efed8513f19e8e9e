"""Tests for the LLM-as-judge scorer."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from answereval.errors import ConfigurationError, GenerationError
from answereval.models import JudgeResult
from answereval.scorers.llm_judge import (
    JUDGE_TEMPERATURE,
    FreeTextJudgeParser,
    StructuredJudgeParser,
    batch_calculate_llm_judge_scores,
    build_judge_prompt,
    calculate_llm_judge_score,
)


def _verdict(score=0.8, reason="Covers the key facts.", **breakdown):
    data = {
        "score": score,
        "breakdown": breakdown or {
            "accuracy": 0.8, "completeness": 0.8, "relevance": 0.8, "coherence": 0.8,
        },
        "reason": reason,
    }
    return data


# ── prompt ──


def test_prompt_contains_all_inputs():
    prompt = build_judge_prompt("What is 2+2?", "Four", "4")
    assert "QUESTION:\nWhat is 2+2?" in prompt
    assert "EXPECTED ANSWER:\n4" in prompt
    assert "GENERATED ANSWER:\nFour" in prompt


def test_prompt_tolerates_braces_in_inputs():
    prompt = build_judge_prompt("{q}", "{\"a\": 1}", "{}")
    assert "{q}" in prompt


# ── free-text parser ──


class TestFreeTextParser:
    def test_embedded_json(self):
        r = FreeTextJudgeParser().parse(
            'Sure! {"score": 0.8, "reason": "Mostly right."} Hope that helps.'
        )
        assert r == JudgeResult(score=0.8, reason="Mostly right.")

    def test_score_as_string(self):
        r = FreeTextJudgeParser().parse('{"score": "0.75", "reason": "ok"}')
        assert r.score == 0.75

    def test_missing_score_uses_breakdown_mean(self):
        raw = json.dumps({"breakdown": {
            "accuracy": 0.6, "completeness": 0.8, "relevance": 1.0, "coherence": 0.6,
        }, "reason": "partial"})
        assert FreeTextJudgeParser().parse(raw).score == pytest.approx(0.75)

    def test_no_score_no_breakdown_is_neutral(self):
        r = FreeTextJudgeParser().parse('{"reason": "unsure"}')
        assert r == JudgeResult(score=0.5, reason="unsure")

    def test_out_of_range_score_clamped(self):
        assert FreeTextJudgeParser().parse('{"score": 1.5, "reason": "x"}').score == 1.0
        assert FreeTextJudgeParser().parse('{"score": -2, "reason": "x"}').score == 0.0

    def test_missing_reason_uses_raw_text(self):
        raw = '{"score": 0.9}'
        assert FreeTextJudgeParser().parse(raw).reason == raw

    @pytest.mark.parametrize("text, expected", [
        ("Score: 0.7 because it is mostly correct", 0.7),
        ("score=0.35", 0.35),
        ("I would give this 0.9/1", 0.9),
        ("That is 0.6 out of 1.", 0.6),
        ("Rating: 0.4", 0.4),
    ])
    def test_score_patterns(self, text, expected):
        r = FreeTextJudgeParser().parse(text)
        assert r.score == pytest.approx(expected)
        assert r.reason == text

    def test_broken_json_falls_through_to_patterns(self):
        r = FreeTextJudgeParser().parse("{score: 0.3, oops} Score: 0.3")
        assert r.score == pytest.approx(0.3)

    @pytest.mark.parametrize("text, expected", [
        ('{"score": 0.8, "reason": "Mostly right",}', 0.8),
        ("{'score': 0.65, 'reason': 'close'}", 0.65),
        ('{"score": "0.45", "reason": "partial",}', 0.45),
        ('{"rating": 0.2,}', 0.2),
    ])
    def test_quoted_keys_in_malformed_json(self, text, expected):
        assert FreeTextJudgeParser().parse(text).score == pytest.approx(expected)

    def test_pattern_value_out_of_range_ignored(self):
        r = FreeTextJudgeParser().parse("Score: 7")
        assert r.score == 0.5

    def test_unparseable_is_neutral_with_excerpt(self):
        raw = "no idea " * 60
        r = FreeTextJudgeParser().parse(raw)
        assert r.score == 0.5
        assert r.reason == raw[:200]


class TestStructuredParser:
    def test_valid_object(self):
        r = StructuredJudgeParser().parse(_verdict(0.9, "Great"))
        assert r == JudgeResult(score=0.9, reason="Great")

    def test_non_mapping_delegates_to_free_text(self):
        assert StructuredJudgeParser().parse("Score: 0.2").score == pytest.approx(0.2)


# ── calculate_llm_judge_score ──


class TestCalculateJudgeScore:
    @pytest.mark.asyncio
    async def test_structured_path(self):
        mock = AsyncMock(return_value=_verdict(0.85, "Accurate."))
        with patch("answereval.scorers.llm_judge.generate_object", mock):
            r = await calculate_llm_judge_score("Q", "gen", "exp", "openai:gpt-4o-mini")
        assert r == JudgeResult(score=0.85, reason="Accurate.")
        assert mock.await_args.kwargs["temperature"] == JUDGE_TEMPERATURE

    @pytest.mark.asyncio
    async def test_free_text_path(self):
        mock = AsyncMock(return_value='```json\n{"score": 0.6, "reason": "Fair."}\n```')
        with patch("answereval.scorers.llm_judge.generate_text", mock):
            r = await calculate_llm_judge_score(
                "Q", "gen", "exp", "openai:gpt-4o-mini", structured=False,
            )
        assert r == JudgeResult(score=0.6, reason="Fair.")
        prompt = mock.await_args.args[1]
        assert "Respond ONLY with JSON" in prompt
        assert mock.await_args.kwargs["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_default_model_from_env(self, monkeypatch):
        monkeypatch.setenv("LLM_JUDGE_MODEL", "google:gemini-2.0-flash")
        mock = AsyncMock(return_value=_verdict())
        with patch("answereval.scorers.llm_judge.generate_object", mock):
            await calculate_llm_judge_score("Q", "gen", "exp")
        assert mock.await_args.args[0] == "google:gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_provider_failure_is_neutral(self):
        mock = AsyncMock(side_effect=GenerationError("LLM generation failed: timeout"))
        with patch("answereval.scorers.llm_judge.generate_object", mock):
            r = await calculate_llm_judge_score("Q", "gen", "exp", "openai:gpt-4o-mini")
        assert r.score == 0.5
        assert r.reason == (
            "Evaluation failed: LLM generation failed: timeout. Defaulting to neutral score."
        )

    @pytest.mark.asyncio
    async def test_bad_model_string_is_neutral(self):
        r = await calculate_llm_judge_score("Q", "gen", "exp", "not-a-model")
        assert r.score == 0.5
        assert r.reason.startswith("Evaluation failed: Invalid model format")

    @pytest.mark.asyncio
    async def test_missing_key_is_neutral(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        r = await calculate_llm_judge_score("Q", "gen", "exp", "openai:gpt-4o-mini")
        assert r.score == 0.5
        assert "OPENAI_API_KEY" in r.reason


class TestBatch:
    @pytest.mark.asyncio
    async def test_preserves_order(self):
        async def fake(question, generated, expected, judge_model=None):
            return JudgeResult(score=float(question), reason=question)

        evaluations = [
            {"question": str(i / 10), "generated_answer": "g", "expected_answer": "e"}
            for i in range(5)
        ]
        with patch("answereval.scorers.llm_judge.calculate_llm_judge_score", side_effect=fake):
            results = await batch_calculate_llm_judge_scores(evaluations, "openai:x")
        assert [r.score for r in results] == [0.0, 0.1, 0.2, 0.3, 0.4]

    @pytest.mark.asyncio
    async def test_rejects_bad_concurrency(self):
        with pytest.raises(ValueError):
            await batch_calculate_llm_judge_scores([], concurrency=0)


def test_configuration_error_is_answereval_error():
    from answereval.errors import AnswerEvalError
    assert issubclass(ConfigurationError, AnswerEvalError)
