"""BLEU scorer — clipped n-gram precision with brevity penalty.

``BLEU = BP * exp(mean(log p_n))`` for n = 1..max_n, where ``p_n`` is the
clipped n-gram precision and ``BP = exp(1 - r/c)`` when the candidate (c
tokens) is shorter than the reference (r tokens), else 1.

Raw sentence-level BLEU for LLM prose tends to sit in the 0.1-0.3 band even
for correct paraphrases. The public ``calculate_*_bleu_score`` helpers
therefore pass the raw value through :func:`normalize_with_sigmoid`, a
reporting transform that spreads that band across [0, 1]. It does not make
the metric more correct, only easier to read next to the other scores.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import List, Sequence, Tuple

SIGMOID_MIDPOINT = 0.2
SIGMOID_STEEPNESS = 10.0

_PUNCT_RE = re.compile(r"[^\w\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase, turn punctuation into whitespace, split, drop empties."""
    return _PUNCT_RE.sub(" ", text.lower()).split()


def ngrams(tokens: Sequence[str], n: int) -> List[Tuple[str, ...]]:
    if len(tokens) < n:
        return []
    return [tuple(tokens[i:i + n]) for i in range(len(tokens) - n + 1)]


def clipped_precision(
    candidate_ngrams: Sequence[Tuple[str, ...]],
    reference_ngrams: Sequence[Tuple[str, ...]],
) -> float:
    """Candidate n-gram matches, each capped at its count in the reference."""
    ref_counts = Counter(reference_ngrams)
    cand_counts = Counter(candidate_ngrams)
    clipped = sum(min(count, ref_counts[gram]) for gram, count in cand_counts.items())
    return clipped / len(candidate_ngrams)


def geometric_mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return math.exp(sum(math.log(v) for v in values) / len(values))


def brevity_penalty(candidate_length: int, reference_length: int) -> float:
    if candidate_length >= reference_length:
        return 1.0
    return math.exp(1 - reference_length / candidate_length)


def normalize_with_sigmoid(
    raw_score: float,
    midpoint: float = SIGMOID_MIDPOINT,
    steepness: float = SIGMOID_STEEPNESS,
) -> float:
    """Sigmoid-redistribute a raw score, anchored so f(0) = 0 and f(1) = 1."""
    x = max(0.0, min(1.0, raw_score))

    def sigmoid(v: float) -> float:
        return 1 / (1 + math.exp(-steepness * (v - midpoint)))

    low, high = sigmoid(0.0), sigmoid(1.0)
    normalized = (sigmoid(x) - low) / (high - low)
    return max(0.0, min(1.0, normalized))


def _bleu(candidate: str, reference: str, max_n: int, smooth: bool) -> float:
    candidate_tokens = tokenize(candidate)
    reference_tokens = tokenize(reference)
    if not candidate_tokens or not reference_tokens:
        return 0.0

    precisions = []
    for n in range(1, max_n + 1):
        candidate_ngrams = ngrams(candidate_tokens, n)
        if not candidate_ngrams:
            # Candidate too short for this order; it does not count against it.
            continue
        precision = clipped_precision(candidate_ngrams, ngrams(reference_tokens, n))
        if precision == 0:
            precision = 1 / (2 ** n) if smooth else 0.001
        precisions.append(precision)

    if not precisions:
        return 0.0

    bp = brevity_penalty(len(candidate_tokens), len(reference_tokens))
    return bp * geometric_mean(precisions)


def calculate_raw_bleu_score(candidate: str, reference: str, max_n: int = 4) -> float:
    """Corpus-style BLEU; zero precisions are floored at 0.001."""
    return _bleu(candidate, reference, max_n, smooth=False)


def calculate_raw_smooth_bleu_score(candidate: str, reference: str, max_n: int = 4) -> float:
    """Sentence-level BLEU; a zero precision at order n becomes 1/2^n."""
    return _bleu(candidate, reference, max_n, smooth=True)


def calculate_bleu_score(candidate: str, reference: str, max_n: int = 4) -> float:
    return normalize_with_sigmoid(calculate_raw_bleu_score(candidate, reference, max_n))


def calculate_smooth_bleu_score(candidate: str, reference: str, max_n: int = 4) -> float:
    """Smoothed sentence-level BLEU after sigmoid redistribution, in [0, 1]."""
    return normalize_with_sigmoid(calculate_raw_smooth_bleu_score(candidate, reference, max_n))
