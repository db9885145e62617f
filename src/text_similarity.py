"""
Text similarity helpers shared by the sweep, scoring and retrieval stages.
"""

import math
from typing import Iterable, Sequence, Set


def _word_set(text: str, min_length: int = 0) -> Set[str]:
    return {w for w in text.lower().split() if len(w) > min_length}


def word_jaccard(a: str, b: str) -> float:
    """Jaccard index over lowercased whitespace-separated words."""
    words_a = _word_set(a)
    words_b = _word_set(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def keyword_jaccard(a: str, b: str) -> float:
    """Jaccard index over words longer than two characters (0 if either side is empty)."""
    words_a = _word_set(a, min_length=2)
    words_b = _word_set(b, min_length=2)
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


def query_keywords(query: str) -> list:
    return [w for w in query.lower().split() if len(w) > 2]


def keyword_hit_ratio(keywords: Sequence[str], text: str) -> float:
    """Fraction of keywords found as substrings of text."""
    if not keywords:
        return 0.0
    lowered = text.lower()
    hits = sum(1 for kw in keywords if kw in lowered)
    return hits / len(keywords)


def cosine_similarity(vec_a: Iterable[float], vec_b: Iterable[float]) -> float:
    """Cosine similarity between two vectors, 0.0 when either has zero norm"""
    a = list(vec_a)
    b = list(vec_b)

    dot_product = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return dot_product / (norm_a * norm_b)
