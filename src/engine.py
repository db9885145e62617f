"""
MemorySieve engine

Facade over the sweep, selective memory, store and retrieval stages. Host
adapters drive it through the session lifecycle:

    engine = MemoryEngine(config)
    engine.init()
    started = engine.start_session("/path/to/project")
    engine.record_event(started.session.id, "UserPromptSubmit", "I prefer tabs ...")
    engine.process_stop(started.session.id)
    engine.end_session(started.session.id)
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from config_manager import ConfigManager
from conflict_filter import ConflictFilterResult, SuppressedMemory, filter_conflicts
from constants import (
    CLASSIFICATION_EMOJIS,
    DEFAULT_EMOJI,
    HOOK_TYPES,
    MAX_MEMORIES_PER_STOP,
    MAX_STM_INJECTION,
    MAX_TOTAL_INJECTION,
    QUERY_CONTEXT_LIMIT,
    STORE_LTM,
)
from context_sweep import ContextSweep, MemoryCandidate
from memory_store import Event, MemoryStore, MemoryUnit, NotInitializedError, Session
from retrieval import MemoryRetrieval, RetrievalIndexItem, select_for_injection
from selective_memory import SelectiveMemory
from semantic_search import EmbeddingWorker, load_searcher

logger = logging.getLogger(__name__)

QUESTION_START = re.compile(
    r"^(what|how|why|where|when|which|who|did|do|does|can|could|should|would|is|are|was|were)\b"
)
MEMORY_REFERENCE = re.compile(
    r"(remember|recall|we decided|you said|previously|last time|before|earlier|port|config|"
    r"setting|command|password|key|token|url|endpoint)"
)


def is_question(prompt: str) -> bool:
    """Whether a prompt asks something memory could answer"""
    lower = prompt.lower().strip()
    return bool(
        lower.endswith("?")
        or QUESTION_START.search(lower)
        or MEMORY_REFERENCE.search(lower)
    )


@dataclass
class SessionStartResult:
    session: Optional[Session]
    context: str
    memories: List[MemoryUnit] = field(default_factory=list)
    suppressed: List[SuppressedMemory] = field(default_factory=list)


@dataclass
class StopResult:
    memories_created: int
    memory_ids: List[str]
    summary: str
    candidates_found: int = 0


class MemoryEngine:
    """
    Selective memory engine.

    Nothing touches the database until init(); every operation raises
    NotInitializedError before that.
    """

    def __init__(self, config: Optional[ConfigManager] = None, store: Optional[MemoryStore] = None,
                 searcher=None):
        """
        Args:
            config: Configuration (loaded from the standard locations if omitted)
            store: Memory store (built from paths.database_file if omitted)
            searcher: Embedding provider (loaded per the embeddings section if omitted)
        """
        self.config = config or ConfigManager()
        self.store = store or MemoryStore(
            str(self.config.get_path("database_file")), self.config.section("memory")
        )
        self.searcher = searcher
        self.embedding_worker: Optional[EmbeddingWorker] = None
        self.sweep: Optional[ContextSweep] = None
        self.selective: Optional[SelectiveMemory] = None
        self.retrieval: Optional[MemoryRetrieval] = None
        self.initialized = False

    def init(self):
        if self.initialized:
            return

        self.store.init()

        if self.searcher is None:
            self.searcher = load_searcher(self.config.section("embeddings"))
        if self.searcher is not None:
            self.embedding_worker = EmbeddingWorker(self.searcher, self.store)

        memory_config = self.config.section("memory")
        self.sweep = ContextSweep(self.config.section("sweep"))
        self.selective = SelectiveMemory(
            self.store, memory_config, self.config.section("scoring"), self.embedding_worker
        )
        self.retrieval = MemoryRetrieval(self.store, memory_config, self.searcher)
        self.initialized = True
        logger.debug("Engine initialized (embeddings %s)", "on" if self.searcher else "off")

    def _ensure_init(self):
        if not self.initialized:
            raise NotInitializedError("MemoryEngine.init() must be called first")

    def close(self):
        if self.embedding_worker is not None:
            self.embedding_worker.stop()
        self.store.close()
        self.initialized = False

    # ==================== CORE STAGES ====================

    def extract_candidates(self, events: Sequence[Event]) -> List[MemoryCandidate]:
        self._ensure_init()
        return self.sweep.extract_candidates(list(events))

    def process_candidates(self, candidates: Sequence[MemoryCandidate], session_id: Optional[str] = None,
                           project_scope: Optional[str] = None) -> List[MemoryUnit]:
        self._ensure_init()
        return self.selective.process_candidates(list(candidates), session_id, project_scope)

    def apply_decay(self, now=None) -> int:
        self._ensure_init()
        return self.store.apply_decay(now)

    def run_consolidation(self) -> int:
        self._ensure_init()
        return self.store.run_consolidation()

    def retrieve_by_scope(self, current_project: Optional[str] = None,
                          limit: Optional[int] = None) -> List[MemoryUnit]:
        self._ensure_init()
        return self.retrieval.retrieve_by_scope(current_project, limit)

    def retrieve_by_scope_with_query(self, query: str, current_project: Optional[str] = None,
                                     limit: Optional[int] = None) -> List[MemoryUnit]:
        self._ensure_init()
        return self.retrieval.retrieve_by_scope_with_query(query, current_project, limit)

    def filter_conflicts(self, memories: Sequence[MemoryUnit]) -> ConflictFilterResult:
        return filter_conflicts(memories)

    def add_feedback(self, feedback_type: str, memory_id: str, content: Optional[str] = None) -> Optional[str]:
        self._ensure_init()
        return self.store.add_feedback(memory_id, feedback_type, content)

    # ==================== SESSION LIFECYCLE ====================

    def build_injection_context(self, current_project: Optional[str] = None,
                                query: Optional[str] = None) -> SessionStartResult:
        """Scope retrieval -> injection budget -> conflict filter -> markdown"""
        self._ensure_init()
        retrieval_config = self.config.section("retrieval")

        if query:
            ranked = self.retrieval.retrieve_by_scope_with_query(query, current_project)
        else:
            ranked = self.retrieval.retrieve_by_scope(current_project)

        budgeted = select_for_injection(
            ranked,
            retrieval_config.get("max_stm_injection", MAX_STM_INJECTION),
            retrieval_config.get("max_total_injection", MAX_TOTAL_INJECTION),
        )
        result = filter_conflicts(budgeted)
        for entry in result.suppressed:
            logger.info("Suppressed memory %s (conflicts with: %s)", entry.memory.id[:8], entry.conflicts_with)

        context = self.retrieval.format_memories_with_scope(result.clean, current_project)
        return SessionStartResult(session=None, context=context, memories=result.clean,
                                  suppressed=result.suppressed)

    def start_session(self, project: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                      query: Optional[str] = None) -> SessionStartResult:
        """Create a session and build the memory context to inject into it"""
        self._ensure_init()
        session = self.store.create_session(project, metadata)
        result = self.build_injection_context(project, query)
        result.session = session
        return result

    def record_event(self, session_id: str, hook_type: str, content: str = "",
                     tool_name: Optional[str] = None, tool_input: Optional[str] = None,
                     tool_output: Optional[str] = None, metadata: Optional[Dict] = None) -> Event:
        self._ensure_init()
        if hook_type not in HOOK_TYPES:
            raise ValueError(f"Unknown hook type: {hook_type}")
        return self.store.create_event(session_id, hook_type, content, tool_name, tool_input,
                                       tool_output, metadata)

    def process_stop(self, session_id: str, conversation_text: Optional[str] = None,
                     reason: str = "stop") -> StopResult:
        """
        Extract and store memories from the events captured since the last
        stop, plus the conversation text if the host supplies it.

        Returns:
            StopResult with the created memory ids and a markdown summary
        """
        self._ensure_init()
        session = self.store.get_session(session_id)
        watermark = self.store.get_message_watermark(session_id)
        events = self.store.get_session_events(session_id, watermark)

        if conversation_text:
            events.append(self.store.create_event(
                session_id, "Stop", conversation_text, metadata={"source": "conversation_text"}
            ))

        if not events:
            return StopResult(0, [], "No events to process.")

        candidates = self.sweep.extract_candidates(events)
        limited = self._apply_limit(candidates)

        project_scope = None
        if session is not None and session.project:
            project_scope = session.project.strip() or None
        memories = self.selective.process_candidates(limited, session_id, project_scope)

        if session is not None:
            self.store.update_message_watermark(session_id, watermark + len(events))

        return StopResult(
            memories_created=len(memories),
            memory_ids=[m.id for m in memories],
            summary=generate_session_summary(events, memories, reason),
            candidates_found=len(candidates),
        )

    def _apply_limit(self, candidates: List[MemoryCandidate]) -> List[MemoryCandidate]:
        limit = self.config.get("memory.max_memories_per_stop", MAX_MEMORIES_PER_STOP)
        if len(candidates) <= limit:
            return candidates
        return sorted(candidates, key=lambda c: c.preliminary_importance, reverse=True)[:limit]

    def end_session(self, session_id: str, status: str = "completed") -> Dict[str, int]:
        """Close the session, then run consolidation and decay"""
        self._ensure_init()
        promoted = self.store.run_consolidation()
        decayed = self.store.apply_decay()
        self.store.end_session(session_id, status)
        return {"promoted": promoted, "decayed": decayed}

    def query_context(self, prompt: str, current_project: Optional[str] = None) -> Optional[str]:
        """
        Memory context for a prompt that looks like a question, or None.
        """
        self._ensure_init()
        if not is_question(prompt):
            return None

        limit = self.config.get("retrieval.query_limit", QUERY_CONTEXT_LIMIT)
        hits = self.retrieval.search_by_scope(prompt, current_project, limit)
        if not hits:
            return None

        lines = ["## Relevant Memories (query-time retrieval)"]
        lines.extend(f"- [{item.classification}] {item.summary}" for item in hits)
        return "\n".join(lines)

    # ==================== INSPECTION ====================

    def search(self, query: str, current_project: Optional[str] = None,
               limit: Optional[int] = None) -> List[RetrievalIndexItem]:
        self._ensure_init()
        if current_project:
            return self.retrieval.search_by_scope(query, current_project, limit)
        return self.retrieval.search(query, limit=limit)

    def get_memory(self, memory_id: str) -> Optional[MemoryUnit]:
        """Look up a memory by full id or unique id prefix"""
        self._ensure_init()
        memory = self.store.get_memory(memory_id)
        if memory is None and memory_id:
            matches = self.store.find_memories_by_prefix(memory_id)
            if len(matches) == 1:
                memory = matches[0]
        return memory

    def list_memories(self, store: Optional[str] = None, status: Optional[str] = None,
                      limit: int = 50) -> List[MemoryUnit]:
        self._ensure_init()
        return self.store.list_memories(store, status, limit)

    def get_stats(self) -> Dict[str, Any]:
        self._ensure_init()
        return self.store.get_stats()


def generate_session_summary(events: Sequence[Event], memories: Sequence[MemoryUnit], reason: str) -> str:
    sections = [
        "# Session Summary",
        f"Reason: {reason}",
        f"Events processed: {len(events)}",
        f"Memories created: {len(memories)}",
        "",
    ]

    if not memories:
        sections.append("*No significant memories extracted from this session.*")
        return "\n".join(sections)

    important = [m for m in memories if m.importance >= 0.7]
    if important:
        sections.append("## High-Importance Memories")
        sections.extend(f"- [{m.store.upper()}] {m.summary}" for m in important)
        sections.append("")

    grouped: Dict[str, int] = {}
    for memory in memories:
        grouped[memory.classification] = grouped.get(memory.classification, 0) + 1

    sections.append("## By Type")
    for classification, count in grouped.items():
        sections.append(f"- {CLASSIFICATION_EMOJIS.get(classification, DEFAULT_EMOJI)} {classification}: {count}")
    sections.append("")

    ltm = [m for m in memories if m.store == STORE_LTM]
    if ltm:
        sections.append("## Promoted to Long-Term Memory")
        sections.extend(f"- {m.summary[:80]}..." for m in ltm)

    return "\n".join(sections)
