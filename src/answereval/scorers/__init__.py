"""Scoring aggregator — BLEU, cosine similarity and LLM-as-judge in one record."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

from answereval.models import ScoreResult
from answereval.scorers.bleu import (
    calculate_bleu_score,
    calculate_raw_bleu_score,
    calculate_raw_smooth_bleu_score,
    calculate_smooth_bleu_score,
)
from answereval.scorers.cosine import (
    calculate_embedding_cosine_similarity,
    calculate_jaccard_similarity,
    calculate_tfidf_cosine_similarity,
)
from answereval.scorers.llm_judge import batch_calculate_llm_judge_scores, calculate_llm_judge_score

logger = logging.getLogger(__name__)

AGGREGATE_WEIGHTS: Dict[str, float] = {
    "bleu": 0.2,
    "cosine": 0.3,
    "llm_score": 0.5,
}


def _ms_since(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


async def calculate_scores(
    generated_answer: str,
    expected_answer: str,
    question: str,
    model: Optional[str] = None,
    *,
    judge_model: Optional[str] = None,
    embedding_model: Optional[str] = None,
) -> ScoreResult:
    """Score one generated answer with all three metrics.

    ``model`` is the model that produced the answer; it is recorded for
    logging only. The judge uses ``judge_model`` or the configured default.
    """
    logger.debug("Scoring answer (%d chars) from %s", len(generated_answer), model or "?")

    start = time.perf_counter()
    bleu = calculate_smooth_bleu_score(generated_answer, expected_answer)
    logger.debug("BLEU %.4f (%dms)", bleu, _ms_since(start))

    start = time.perf_counter()
    try:
        cosine = await calculate_embedding_cosine_similarity(
            generated_answer, expected_answer, embedding_model,
        )
    except Exception as exc:
        logger.warning("Falling back to TF-IDF cosine similarity: %s", exc)
        cosine = calculate_tfidf_cosine_similarity(generated_answer, expected_answer)
    logger.debug("Cosine %.4f (%dms)", cosine, _ms_since(start))

    start = time.perf_counter()
    verdict = await calculate_llm_judge_score(
        question, generated_answer, expected_answer, judge_model,
    )
    logger.debug("LLM judge %.4f (%dms)", verdict.score, _ms_since(start))

    return ScoreResult(bleu=bleu, cosine=cosine, llm_score=verdict.score, llm_reason=verdict.reason)


def calculate_quick_scores(generated_answer: str, expected_answer: str) -> Dict[str, float]:
    """BLEU and TF-IDF cosine only; makes no network calls."""
    return {
        "bleu": calculate_smooth_bleu_score(generated_answer, expected_answer),
        "cosine": calculate_tfidf_cosine_similarity(generated_answer, expected_answer),
    }


def calculate_aggregate_score(scores: ScoreResult) -> float:
    """Weighted single number for ranking: 0.2 BLEU + 0.3 cosine + 0.5 judge."""
    return (
        AGGREGATE_WEIGHTS["bleu"] * scores.bleu
        + AGGREGATE_WEIGHTS["cosine"] * scores.cosine
        + AGGREGATE_WEIGHTS["llm_score"] * scores.llm_score
    )


__all__ = [
    "AGGREGATE_WEIGHTS",
    "batch_calculate_llm_judge_scores",
    "calculate_aggregate_score",
    "calculate_bleu_score",
    "calculate_embedding_cosine_similarity",
    "calculate_jaccard_similarity",
    "calculate_llm_judge_score",
    "calculate_quick_scores",
    "calculate_raw_bleu_score",
    "calculate_raw_smooth_bleu_score",
    "calculate_scores",
    "calculate_smooth_bleu_score",
    "calculate_tfidf_cosine_similarity",
]
