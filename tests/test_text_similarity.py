"""
Tests for the shared text similarity helpers.
"""

import math
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from text_similarity import (
    cosine_similarity,
    keyword_hit_ratio,
    keyword_jaccard,
    query_keywords,
    word_jaccard,
)


class TestJaccard:
    """Test word and keyword Jaccard."""

    def test_word_jaccard(self):
        """Shared words over all words, case-insensitive."""
        assert word_jaccard("Use tabs", "use spaces") == pytest.approx(1 / 3)
        assert word_jaccard("same text", "SAME TEXT") == 1.0

    def test_word_jaccard_empty(self):
        """Two empty strings have no overlap."""
        assert word_jaccard("", "") == 0.0

    def test_keyword_jaccard_ignores_short_words(self):
        """Words of two characters or less do not count."""
        assert keyword_jaccard("we use tabs", "do use tabs") == pytest.approx(1.0)
        assert keyword_jaccard("a b", "tabs") == 0.0


class TestKeywords:
    """Test query keyword matching."""

    def test_query_keywords(self):
        """Only words longer than two characters are kept."""
        assert query_keywords("How do I run the tests") == ["how", "run", "the", "tests"]

    def test_hit_ratio(self):
        """Fraction of keywords found in the text."""
        assert keyword_hit_ratio(["tabs", "yaml"], "I prefer TABS") == 0.5
        assert keyword_hit_ratio([], "anything") == 0.0


class TestCosine:
    """Test cosine similarity."""

    def test_identical_and_orthogonal(self):
        """Identical vectors score 1, orthogonal ones 0."""
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_angle(self):
        """45 degrees gives 1/sqrt(2)."""
        assert cosine_similarity([1.0, 0.0], [1.0, 1.0]) == pytest.approx(1 / math.sqrt(2))

    def test_zero_vector(self):
        """A zero vector has no direction."""
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
