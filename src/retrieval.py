"""
Retrieval for MemorySieve

Two levels of retrieval keep injected context small:
1. Index: id, summary, strength and token cost of each matching memory
2. Details: full memory units, fetched by id on demand

Scope-aware retrieval only returns user-level memories plus project-level
memories of the current project.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePath
from typing import Any, Dict, List, Optional, Sequence

from constants import (
    STORE_LTM,
    STORE_STM,
    DEFAULT_RETRIEVAL_LIMIT,
    MIN_POOL_SIZE,
    MAX_POOL_SIZE,
    MAX_STM_INJECTION,
    MAX_TOTAL_INJECTION,
    TAG_MATCH_BONUS,
    USER_LEVEL_CLASSIFICATIONS,
)
from memory_store import MemoryStore, MemoryUnit
from text_similarity import keyword_jaccard, query_keywords, keyword_hit_ratio

logger = logging.getLogger(__name__)


@dataclass
class RetrievalIndexItem:
    """Lightweight view of a memory for index listings"""
    id: str
    summary: str
    classification: str
    store: str
    strength: float
    estimated_tokens: int
    relevance_score: float


@dataclass
class RetrievalDetail:
    memory: MemoryUnit
    relevance_score: float
    retrieval_reason: str


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token)"""
    return math.ceil(len(text) / 4)


def pool_size_for(limit: int) -> int:
    return min(MAX_POOL_SIZE, max(MIN_POOL_SIZE, limit * 10))


def format_strength_bar(strength: float) -> str:
    filled = max(0, min(5, round(strength * 5)))
    return "[" + "█" * filled + "░" * (5 - filled) + "]"


def _store_label(store: str) -> str:
    return "LTM" if store == STORE_LTM else "STM"


def select_for_injection(memories: Sequence[MemoryUnit], max_stm: int = MAX_STM_INJECTION,
                         max_total: int = MAX_TOTAL_INJECTION) -> List[MemoryUnit]:
    """
    Apply the injection budget to ranked memories: the best `max_stm` STM
    memories first, then LTM memories up to `max_total` in all. Rank order
    is kept within each tier.
    """
    stm = [m for m in memories if m.store == STORE_STM][:max_stm]
    ltm = [m for m in memories if m.store == STORE_LTM][:max(0, max_total - len(stm))]
    return stm + ltm


class MemoryRetrieval:
    """Ranks and formats memories for injection into a new context"""

    def __init__(self, store: MemoryStore, config: Optional[Dict[str, Any]] = None, searcher=None):
        """
        Args:
            store: Initialized memory store
            config: The `memory` config section (for default_retrieval_limit)
            searcher: Optional SemanticSearcher for cosine similarity
        """
        config = config or {}
        self.store = store
        self.default_limit = config.get("default_retrieval_limit", DEFAULT_RETRIEVAL_LIMIT)
        self.searcher = searcher

    # ==================== SCORING ====================

    def calculate_relevance(self, memory: MemoryUnit, query: str,
                            query_embedding: Optional[List[float]] = None,
                            now: Optional[datetime] = None) -> float:
        """
        Relevance of a memory to a query, capped at 1.

        text similarity * 2 * (0.5 + strength * 0.5) + tag bonus + recency bonus
        """
        summary = memory.summary.lower()
        keywords = query_keywords(query)

        jaccard = keyword_jaccard(summary, query)
        keyword_score = keyword_hit_ratio(keywords, summary)

        tag_matches = sum(1 for tag in memory.tags if any(kw in tag.lower() for kw in keywords))
        tag_score = tag_matches * TAG_MATCH_BONUS

        recency_bonus = 0.0
        try:
            age_hours = ((now or datetime.now()) - datetime.fromisoformat(memory.created_at)).total_seconds() / 3600
            recency_bonus = max(0.0, 0.05 - age_hours / 2000)
        except (TypeError, ValueError):
            logger.debug("Unparseable created_at on memory %s", memory.id)

        if query_embedding and memory.embedding and self.searcher is not None:
            cosine = self.searcher.similarity(query_embedding, memory.embedding)
            cosine_norm = (cosine + 1) / 2
            text_similarity = cosine_norm * 0.4 + jaccard * 0.3 + keyword_score * 0.3
        else:
            text_similarity = jaccard * 0.5 + keyword_score * 0.5

        score = text_similarity * 2.0 * (0.5 + memory.strength * 0.5) + tag_score + recency_bonus
        return min(1.0, score)

    def _embed_query(self, query: str) -> Optional[List[float]]:
        if self.searcher is None:
            return None
        try:
            return self.searcher.embed(query)
        except Exception as e:
            logger.debug("Query embedding failed, using word overlap: %s", e)
            return None

    def rank(self, memories: Sequence[MemoryUnit], query: str,
             query_embedding: Optional[List[float]] = None) -> List[MemoryUnit]:
        scored = [(m, self.calculate_relevance(m, query, query_embedding)) for m in memories]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return [m for m, _ in scored]

    # ==================== INDEX & DETAILS ====================

    def retrieve_index(self, query: Optional[str] = None, filters: Optional[Dict[str, Any]] = None,
                       limit: Optional[int] = None) -> List[RetrievalIndexItem]:
        """
        Retrieve a lightweight memory index.

        Args:
            query: Optional text to rank by
            filters: Optional store, classifications, min_strength, tags, since
            limit: Maximum number of items

        Returns:
            Index items, best first
        """
        limit = limit or self.default_limit
        memories = self._filtered_memories(filters, pool_size_for(limit))
        if query:
            memories = self.rank(memories, query)
        return [self._to_index_item(m, query) for m in memories[:limit]]

    def retrieve_details(self, memory_ids: Sequence[str], session_id: Optional[str] = None) -> List[RetrievalDetail]:
        """Full memories by id; each access is logged and bumps frequency"""
        details = []
        for memory_id in memory_ids:
            memory = self.store.get_memory(memory_id)
            if memory is None:
                continue

            if session_id:
                self.store.log_retrieval(memory_id, "detail_request", session_id, memory.strength)
            self.store.increment_frequency(memory_id)

            details.append(RetrievalDetail(memory, memory.strength, "Requested by ID"))
        return details

    def search(self, query: str, filters: Optional[Dict[str, Any]] = None,
               limit: Optional[int] = None) -> List[RetrievalIndexItem]:
        return self.retrieve_index(query, filters, limit)

    def get_memory(self, memory_id: str) -> Optional[MemoryUnit]:
        return self.store.get_memory(memory_id)

    def _filtered_memories(self, filters: Optional[Dict[str, Any]], limit: int) -> List[MemoryUnit]:
        memories = self.store.get_top_memories(limit)
        if not filters:
            return memories

        if filters.get("store"):
            memories = [m for m in memories if m.store == filters["store"]]
        if filters.get("classifications"):
            memories = [m for m in memories if m.classification in filters["classifications"]]
        if filters.get("min_strength") is not None:
            memories = [m for m in memories if m.strength >= filters["min_strength"]]
        if filters.get("tags"):
            memories = [m for m in memories if any(t in m.tags for t in filters["tags"])]
        if filters.get("since"):
            memories = [m for m in memories if m.created_at >= filters["since"]]
        return memories

    def _to_index_item(self, memory: MemoryUnit, query: Optional[str] = None) -> RetrievalIndexItem:
        return RetrievalIndexItem(
            id=memory.id,
            summary=memory.summary,
            classification=memory.classification,
            store=memory.store,
            strength=memory.strength,
            estimated_tokens=estimate_tokens(memory.summary),
            relevance_score=self.calculate_relevance(memory, query) if query else memory.strength,
        )

    # ==================== SCOPE-AWARE ====================

    def retrieve_by_scope(self, current_project: Optional[str] = None,
                          limit: Optional[int] = None) -> List[MemoryUnit]:
        """User-level memories plus current-project memories, strongest first"""
        return self.store.get_memories_by_scope(current_project, limit or self.default_limit)

    def retrieve_by_scope_with_query(self, query: str, current_project: Optional[str] = None,
                                     limit: Optional[int] = None) -> List[MemoryUnit]:
        """
        Like retrieve_by_scope, but re-rank a larger scoped pool against the
        query before applying the limit. An empty query keeps strength order.
        """
        limit = limit or self.default_limit
        pool = self.store.get_memories_by_scope(current_project, pool_size_for(limit))
        if not query or not query.strip() or not pool:
            return pool[:limit]

        return self.rank(pool, query, self._embed_query(query))[:limit]

    def retrieve_user_level(self, limit: Optional[int] = None) -> List[MemoryUnit]:
        return self.store.get_user_level_memories(limit or self.default_limit)

    def retrieve_project_level(self, project: str, limit: Optional[int] = None) -> List[MemoryUnit]:
        return self.store.get_project_memories(project, limit or self.default_limit)

    def search_by_scope(self, query: str, current_project: Optional[str] = None,
                        limit: Optional[int] = None) -> List[RetrievalIndexItem]:
        limit = limit or self.default_limit
        memories = self.store.get_memories_by_scope(current_project, pool_size_for(limit))
        if query:
            memories = self.rank(memories, query)
        return [self._to_index_item(m, query) for m in memories[:limit]]

    # ==================== FORMATTING ====================

    @staticmethod
    def format_index_for_context(index: Sequence[RetrievalIndexItem]) -> str:
        if not index:
            return "No relevant memories found."

        lines = ["Available memories:"]
        for item in index:
            lines.append(f"{format_strength_bar(item.strength)} [{_store_label(item.store)}] {item.summary}")
            lines.append(f"    ID: {item.id[:8]} | {item.classification} | ~{item.estimated_tokens} tokens")

        lines.append("")
        lines.append("Use memory ID to request full details.")
        return "\n".join(lines)

    @staticmethod
    def format_memories_with_scope(memories: Sequence[MemoryUnit], current_project: Optional[str] = None) -> str:
        """Group memories into a user-level and a project-level markdown section"""
        if not memories:
            return "No relevant memories found."

        user_level = [m for m in memories if m.classification in USER_LEVEL_CLASSIFICATIONS]
        project_level = [m for m in memories if m.classification not in USER_LEVEL_CLASSIFICATIONS]

        lines = []
        if user_level:
            lines.append("## User Preferences & Constraints")
            lines.append("")
            lines.extend(_format_line(m) for m in user_level)
            lines.append("")

        if project_level:
            project_name = PurePath(current_project.replace("\\", "/")).name if current_project else ""
            lines.append(f"## {project_name or 'Current Project'} Context")
            lines.append("")
            lines.extend(_format_line(m) for m in project_level)
            lines.append("")

        return "\n".join(lines)


def _format_line(memory: MemoryUnit) -> str:
    return (f"{format_strength_bar(memory.strength)} [{_store_label(memory.store)}] "
            f"[{memory.classification}] {memory.summary}")
