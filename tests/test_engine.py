"""
Tests for the MemoryEngine session lifecycle.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from engine import MemoryEngine, generate_session_summary, is_question
from memory_store import MemoryUnit, NotInitializedError

PREFERENCE = "I prefer tabs over spaces for indentation in this project."
DECISION = "We decided to use PostgreSQL for the storage layer."


@pytest.fixture
def engine(config):
    memory_engine = MemoryEngine(config)
    memory_engine.init()
    yield memory_engine
    memory_engine.close()


def add_memory(engine, summary, classification="preference", store="stm", strength=0.5, **kwargs):
    return engine.store.create_memory(MemoryUnit(
        id="", store=store, classification=classification, summary=summary, strength=strength, **kwargs
    ))


class TestIsQuestion:
    """Test question detection for query-time retrieval."""

    def test_questions(self):
        """Question marks, question words and memory references count."""
        assert is_question("tabs or spaces?")
        assert is_question("How do I run the tests")
        assert is_question("remind me of the deploy command")

    def test_statements(self):
        """Plain instructions do not."""
        assert not is_question("Refactor the parser module")


class TestLifecycle:
    """Test init and close."""

    def test_use_before_init_raises(self, config):
        """Operations before init() raise NotInitializedError."""
        memory_engine = MemoryEngine(config)

        with pytest.raises(NotInitializedError):
            memory_engine.start_session("/work/app")
        with pytest.raises(NotInitializedError):
            memory_engine.get_stats()

    def test_embeddings_disabled(self, engine):
        """With embeddings off there is no searcher and no worker."""
        assert engine.searcher is None
        assert engine.embedding_worker is None

    def test_database_lives_next_to_config(self, engine, tmp_path):
        """The default database path is resolved from the config dir."""
        assert Path(engine.store.db_path) == tmp_path / "memory.db"

    def test_unknown_hook_rejected(self, engine):
        """Only known hook types are recorded."""
        session = engine.start_session("/work/app").session

        with pytest.raises(ValueError):
            engine.record_event(session.id, "BeforeLunch", "hi")


class TestProcessStop:
    """Test memory extraction at stop time."""

    def test_events_become_memories(self, engine):
        """Captured prompts turn into stored memories."""
        session = engine.start_session("/work/app").session
        engine.record_event(session.id, "UserPromptSubmit", PREFERENCE)

        result = engine.process_stop(session.id)

        assert result.memories_created == 1
        memory = engine.get_memory(result.memory_ids[0])
        assert memory.classification == "preference"
        assert memory.project_scope is None
        assert "Memories created: 1" in result.summary

    def test_watermark_prevents_reprocessing(self, engine):
        """A second stop only sees new events."""
        session = engine.start_session("/work/app").session
        engine.record_event(session.id, "UserPromptSubmit", PREFERENCE)
        engine.process_stop(session.id)

        assert engine.store.get_message_watermark(session.id) == 1

        second = engine.process_stop(session.id)

        assert second.memories_created == 0
        assert second.summary == "No events to process."

    def test_conversation_text_is_recorded(self, engine):
        """Conversation text becomes a Stop event and counts toward the watermark."""
        session = engine.start_session("/work/app").session
        text = "Human: Remember this: we deploy from the release branch only\nAssistant: Understood."

        result = engine.process_stop(session.id, conversation_text=text)

        assert result.memories_created == 1
        events = engine.store.get_session_events(session.id)
        assert [e.hook_type for e in events] == ["Stop"]
        assert engine.store.get_message_watermark(session.id) == 1

    def test_project_level_memory_gets_scope(self, engine):
        """Decisions are scoped to the session project."""
        session = engine.start_session("  /work/app  ").session
        engine.record_event(session.id, "UserPromptSubmit", DECISION)

        result = engine.process_stop(session.id)

        memory = engine.get_memory(result.memory_ids[0])
        assert memory.classification == "decision"
        assert memory.store == "ltm"
        assert memory.project_scope == "/work/app"

    def test_max_memories_per_stop(self, engine, config):
        """Only the most important candidates are kept."""
        config.set("memory.max_memories_per_stop", 1)
        session = engine.start_session("/work/app").session
        engine.record_event(session.id, "UserPromptSubmit", PREFERENCE)
        engine.record_event(session.id, "UserPromptSubmit", "Remember this: the staging database is read only")

        result = engine.process_stop(session.id)

        assert result.candidates_found == 2
        assert result.memories_created == 1
        assert "staging" in engine.get_memory(result.memory_ids[0]).summary

    def test_embeddings_computed_in_background(self, config):
        """New memories get embeddings through the worker."""
        searcher = MagicMock()
        searcher.embed.return_value = [0.25, 0.5]
        memory_engine = MemoryEngine(config, searcher=searcher)
        memory_engine.init()
        try:
            session = memory_engine.start_session("/work/app").session
            memory_engine.record_event(session.id, "UserPromptSubmit", PREFERENCE)

            result = memory_engine.process_stop(session.id)
            memory_engine.embedding_worker.drain()

            assert memory_engine.get_memory(result.memory_ids[0]).embedding == pytest.approx([0.25, 0.5])
        finally:
            memory_engine.close()


class TestInjection:
    """Test the context injected at session start."""

    def test_next_session_sees_memories(self, engine):
        """Memories from one session are injected into the next."""
        first = engine.start_session("/work/app").session
        engine.record_event(first.id, "UserPromptSubmit", DECISION)
        engine.process_stop(first.id)
        engine.end_session(first.id)

        started = engine.start_session("/work/app")

        assert "## app Context" in started.context
        assert "PostgreSQL" in started.context
        assert started.session.project == "/work/app"

    def test_other_project_does_not_see_project_memories(self, engine):
        """Project-level memories stay in their project."""
        add_memory(engine, "Chose Postgres", classification="decision", store="ltm", project_scope="/work/app")

        started = engine.start_session("/work/other")

        assert "Postgres" not in started.context
        assert started.context == "No relevant memories found."

    def test_conflicting_memory_suppressed(self, engine):
        """The weaker of two contradicting memories is not injected."""
        add_memory(engine, "Always use tabs for indentation", strength=0.8)
        add_memory(engine, "Never use tabs for indentation", strength=0.5)

        started = engine.start_session("/work/app")

        assert "Always use tabs" in started.context
        assert "Never use tabs" not in started.context
        assert [s.memory.summary for s in started.suppressed] == ["Never use tabs for indentation"]

    def test_injection_budget(self, engine):
        """At most three STM memories are injected."""
        for i in range(5):
            add_memory(engine, f"I prefer style number {i} everywhere", strength=0.5 + i / 100)

        started = engine.start_session("/work/app")

        assert len(started.memories) == 3

    def test_query_context(self, engine):
        """Question prompts get a query-time memory block."""
        add_memory(engine, "I prefer tabs for indentation", strength=0.6)

        block = engine.query_context("what indentation do I use?", "/work/app")

        assert block.startswith("## Relevant Memories (query-time retrieval)")
        assert "- [preference] I prefer tabs for indentation" in block
        assert engine.query_context("Refactor the parser module", "/work/app") is None


class TestEndSessionAndFeedback:
    """Test end-of-session maintenance and feedback."""

    def test_end_session_consolidates(self, engine):
        """Ending a session promotes strong STM memories."""
        session = engine.start_session("/work/app").session
        strong = add_memory(engine, "I prefer tabs for indentation", strength=0.75)

        result = engine.end_session(session.id)

        assert result["promoted"] == 1
        assert "decayed" in result
        assert engine.get_memory(strong.id).store == "ltm"
        assert engine.store.get_session(session.id).status == "completed"

    def test_feedback_by_prefix(self, engine):
        """Short ids resolve and feedback applies."""
        memory = add_memory(engine, "I prefer tabs for indentation")
        resolved = engine.get_memory(memory.id[:8])

        engine.add_feedback("forget", resolved.id)

        assert engine.get_memory(memory.id).status == "forgotten"
        assert engine.retrieve_by_scope("/work/app") == []

    def test_unknown_feedback_type(self, engine):
        """Unknown feedback types raise ValueError."""
        memory = add_memory(engine, "I prefer tabs for indentation")

        with pytest.raises(ValueError):
            engine.add_feedback("adore", memory.id)


class TestSessionSummary:
    """Test the stop summary."""

    def test_empty(self):
        """No memories gives a short note."""
        summary = generate_session_summary([], [], "stop")

        assert "No significant memories" in summary
        assert "Reason: stop" in summary

    def test_grouped(self):
        """Memories are grouped by type and LTM ones listed."""
        memories = [
            MemoryUnit(id="1", store="ltm", classification="decision", summary="Chose Postgres", importance=0.7),
            MemoryUnit(id="2", store="stm", classification="preference", summary="Tabs", importance=0.6),
        ]

        summary = generate_session_summary([], memories, "stop")

        assert "## High-Importance Memories" in summary
        assert "- [LTM] Chose Postgres" in summary
        assert "🤔 decision: 1" in summary
        assert "## Promoted to Long-Term Memory" in summary
