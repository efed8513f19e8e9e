"""Cosine similarity scorers.

Two interchangeable strategies:

* embedding cosine — embeds both texts with the configured embedding model
  (more accurate, needs a provider and credentials);
* "TF-IDF" cosine — cosine over term-frequency vectors built from the two
  texts alone. Only the TF half is computed: with two documents there is no
  corpus to derive IDF weights from.

A failing embedding provider never fails the caller: the embedding scorer
logs the problem and returns the TF-IDF score for the same inputs.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import Counter
from typing import List, Optional, Sequence

from answereval.providers import generate_embedding
from answereval.scorers.bleu import tokenize

logger = logging.getLogger(__name__)

EMBEDDING_WEIGHT = 0.7
TFIDF_WEIGHT = 0.3


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); 0 when either vector has zero norm."""
    if len(vec1) != len(vec2):
        raise ValueError(
            f"Vectors must have same length (got {len(vec1)} and {len(vec2)})"
        )
    dot = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = math.sqrt(sum(a * a for a in vec1))
    norm2 = math.sqrt(sum(b * b for b in vec2))
    denominator = norm1 * norm2
    if denominator == 0:
        return 0.0
    return dot / denominator


def _tf_vector(tokens: List[str], vocabulary: List[str]) -> List[float]:
    counts = Counter(tokens)
    total = len(tokens)
    return [counts[term] / total for term in vocabulary]


def calculate_tfidf_cosine_similarity(text1: str, text2: str) -> float:
    tokens1 = tokenize(text1)
    tokens2 = tokenize(text2)
    if not tokens1 or not tokens2:
        return 0.0
    vocabulary = sorted(set(tokens1) | set(tokens2))
    return cosine_similarity(_tf_vector(tokens1, vocabulary), _tf_vector(tokens2, vocabulary))


async def calculate_embedding_cosine_similarity(
    text1: str,
    text2: str,
    model: Optional[str] = None,
) -> float:
    """Embedding cosine, falling back to TF-IDF when the embedding calls fail.

    Vectors of different dimensionality mean the provider returned
    inconsistent embeddings; that raises ValueError instead of falling back.
    """
    try:
        embedding1, embedding2 = await asyncio.gather(
            generate_embedding(text1, model),
            generate_embedding(text2, model),
        )
    except Exception as exc:
        logger.warning("Embedding similarity failed, falling back to TF-IDF: %s", exc)
        return calculate_tfidf_cosine_similarity(text1, text2)

    similarity = max(0.0, min(1.0, cosine_similarity(embedding1, embedding2)))
    logger.debug("Embedding similarity: %.4f", similarity)
    return similarity


def calculate_jaccard_similarity(text1: str, text2: str) -> float:
    """|A ∩ B| / |A ∪ B| over token sets; 1.0 when both are empty."""
    set1 = set(tokenize(text1))
    set2 = set(tokenize(text2))
    if not set1 and not set2:
        return 1.0
    return len(set1 & set2) / len(set1 | set2)


async def calculate_combined_similarity(
    text1: str,
    text2: str,
    model: Optional[str] = None,
) -> float:
    """0.7 * embedding cosine + 0.3 * TF-IDF cosine."""
    tfidf = calculate_tfidf_cosine_similarity(text1, text2)
    try:
        embedding = await calculate_embedding_cosine_similarity(text1, text2, model)
    except Exception as exc:
        logger.warning("Combined similarity using TF-IDF only: %s", exc)
        return tfidf
    return EMBEDDING_WEIGHT * embedding + TFIDF_WEIGHT * tfidf
