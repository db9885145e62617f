"""
Tests for memory retrieval and ranking.
"""

import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from retrieval import (
    MemoryRetrieval,
    RetrievalIndexItem,
    estimate_tokens,
    format_strength_bar,
    pool_size_for,
    select_for_injection,
)


@pytest.fixture
def retrieval(store):
    return MemoryRetrieval(store)


class TestHelpers:
    """Test small helper functions."""

    def test_estimate_tokens(self):
        """About four characters per token, rounded up."""
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_pool_size_bounds(self):
        """Pool is ten times the limit within [50, 200]."""
        assert pool_size_for(1) == 50
        assert pool_size_for(10) == 100
        assert pool_size_for(100) == 200

    def test_strength_bar(self):
        """Five cells, filled in proportion to strength."""
        assert format_strength_bar(0.6) == "[███░░]"
        assert format_strength_bar(1.0) == "[█████]"
        assert format_strength_bar(0.0) == "[░░░░░]"


class TestInjectionBudget:
    """Test the STM/LTM injection budget."""

    def test_budget(self, make_memory):
        """At most three STM memories and seven in total."""
        ranked = [make_memory(f"short term memory {i}") for i in range(5)]
        ranked += [make_memory(f"long term memory {i}", store_name="ltm") for i in range(6)]

        selected = select_for_injection(ranked)

        assert [m.store for m in selected] == ["stm"] * 3 + ["ltm"] * 4
        assert selected[0].id == ranked[0].id
        assert selected[3].id == ranked[5].id

    def test_ltm_fills_unused_stm_slots(self, make_memory):
        """Fewer STM memories leave more room for LTM."""
        ranked = [make_memory("only short term memory")]
        ranked += [make_memory(f"long term memory {i}", store_name="ltm") for i in range(8)]

        assert len(select_for_injection(ranked)) == 7


class TestRelevance:
    """Test the relevance formula."""

    def test_keyword_match_beats_stronger_unrelated(self, store, retrieval, make_memory):
        """Query overlap outranks raw strength."""
        weak_match = make_memory("I prefer tabs for indentation", strength=0.3)
        make_memory("Use poetry for packaging", strength=0.9)

        ranked = retrieval.retrieve_by_scope_with_query("tabs indentation")

        assert ranked[0].id == weak_match.id

    def test_empty_query_keeps_strength_order(self, retrieval, make_memory):
        """Without a query, strength order is returned unchanged."""
        weak = make_memory("I prefer tabs for indentation", strength=0.3)
        strong = make_memory("Use poetry for packaging", strength=0.9)

        for query in ("", "   "):
            assert [m.id for m in retrieval.retrieve_by_scope_with_query(query)] == [strong.id, weak.id]

    def test_score_capped_at_one(self, retrieval, make_memory):
        """Relevance never exceeds 1."""
        memory = make_memory("tabs tabs indentation", strength=1.0, tags=["tabs", "indentation"])

        assert retrieval.calculate_relevance(memory, "tabs indentation") == 1.0

    def test_tag_bonus(self, retrieval, make_memory):
        """Tags containing a query keyword add a bonus."""
        plain = make_memory("Use poetry for packaging", strength=0.5)
        tagged = make_memory("Use poetry for packaging", strength=0.5, tags=["indentation"])
        now = datetime.fromisoformat(plain.created_at)

        difference = (retrieval.calculate_relevance(tagged, "indentation", now=now)
                      - retrieval.calculate_relevance(plain, "indentation", now=now))

        assert difference == pytest.approx(0.15, abs=0.01)

    def test_embedding_similarity_used_when_available(self, store, make_memory):
        """Cosine similarity joins the blend when both sides have vectors."""
        searcher = MagicMock()
        searcher.similarity.return_value = 1.0
        retrieval = MemoryRetrieval(store, searcher=searcher)
        memory = make_memory("Use poetry for packaging", strength=0.5, embedding=[1.0, 0.0])
        now = datetime.fromisoformat(memory.created_at)

        score = retrieval.calculate_relevance(memory, "tabs", query_embedding=[1.0, 0.0], now=now)

        # 0.4 * cosine, no word overlap, strength factor 0.75, fresh memory bonus 0.05
        assert score == pytest.approx(0.4 * 2 * 0.75 + 0.05)

    def test_failing_query_embedding_falls_back(self, store, make_memory):
        """Embedding errors fall back to word overlap."""
        searcher = MagicMock()
        searcher.embed.side_effect = RuntimeError("model gone")
        retrieval = MemoryRetrieval(store, searcher=searcher)
        match = make_memory("I prefer tabs for indentation", strength=0.3)
        make_memory("Use poetry for packaging", strength=0.9)

        assert retrieval.retrieve_by_scope_with_query("tabs")[0].id == match.id


class TestIndexAndDetails:
    """Test the two-level retrieval."""

    def test_index_items(self, retrieval, make_memory):
        """Index items carry size estimates and relevance."""
        make_memory("I prefer tabs for indentation", strength=0.6)

        index = retrieval.retrieve_index()

        assert len(index) == 1
        assert isinstance(index[0], RetrievalIndexItem)
        assert index[0].estimated_tokens == estimate_tokens("I prefer tabs for indentation")
        assert index[0].relevance_score == 0.6

    def test_filters(self, retrieval, make_memory):
        """Store, classification, strength and tag filters narrow the index."""
        make_memory("I prefer tabs for indentation", strength=0.6, tags=["style"])
        make_memory("Fixed the flaky import", classification="bugfix", store_name="ltm", strength=0.8)
        make_memory("weak preference memory", strength=0.2)

        assert len(retrieval.retrieve_index(filters={"store": "ltm"})) == 1
        assert len(retrieval.retrieve_index(filters={"classifications": ["preference"]})) == 2
        assert len(retrieval.retrieve_index(filters={"min_strength": 0.5})) == 2
        assert [i.summary for i in retrieval.retrieve_index(filters={"tags": ["style"]})] == [
            "I prefer tabs for indentation"
        ]

    def test_details_log_and_bump_frequency(self, store, retrieval, make_memory):
        """Detail requests are logged and count as accesses."""
        memory = make_memory("I prefer tabs for indentation")

        details = retrieval.retrieve_details([memory.id, "missing"], session_id="s1")

        assert len(details) == 1
        assert details[0].retrieval_reason == "Requested by ID"
        assert store.get_memory(memory.id).frequency == 2
        assert store.get_retrieval_logs(memory.id)[0]["query"] == "detail_request"

    def test_scope_levels(self, retrieval, make_memory):
        """User-level and project-level retrieval split by classification."""
        pref = make_memory("I prefer tabs for indentation")
        decision = make_memory("Chose Postgres", classification="decision", project_scope="/work/app")

        assert [m.id for m in retrieval.retrieve_user_level()] == [pref.id]
        assert [m.id for m in retrieval.retrieve_project_level("/work/app")] == [decision.id]
        assert {i.id for i in retrieval.search_by_scope("postgres", "/work/app")} == {pref.id, decision.id}


class TestFormatting:
    """Test context formatting."""

    def test_index_format(self, retrieval, make_memory):
        """Index text shows strength, store and a short id."""
        memory = make_memory("I prefer tabs for indentation", strength=0.6)

        text = retrieval.format_index_for_context(retrieval.retrieve_index())

        assert "[███░░] [STM] I prefer tabs for indentation" in text
        assert f"ID: {memory.id[:8]}" in text
        assert retrieval.format_index_for_context([]) == "No relevant memories found."

    def test_scope_sections(self, retrieval, make_memory):
        """Memories are grouped under user and project headings."""
        make_memory("I prefer tabs for indentation", strength=0.6)
        make_memory("Chose Postgres", classification="decision", store_name="ltm",
                    strength=0.8, project_scope="/work/my-app")

        text = retrieval.format_memories_with_scope(retrieval.retrieve_by_scope("/work/my-app"), "/work/my-app")

        assert "## User Preferences & Constraints" in text
        assert "## my-app Context" in text
        assert "[████░] [LTM] [decision] Chose Postgres" in text

    def test_windows_project_name(self, retrieval, make_memory):
        """Backslash paths still yield the folder name."""
        memory = make_memory("Chose Postgres", classification="decision")

        text = retrieval.format_memories_with_scope([memory], "C:\\work\\billing")

        assert "## billing Context" in text
        assert "## Current Project Context" in retrieval.format_memories_with_scope([memory])
