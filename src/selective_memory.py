"""
Selective Memory for MemorySieve

Scores memory candidates, decides their store (STM vs LTM) and persists the
ones that are not near-duplicates of what is already remembered.

Scoring functions take the pool of existing memories as an argument so they
stay pure; SelectiveMemory loads that pool once per call.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from constants import (
    STORE_STM,
    STORE_LTM,
    AUTO_PROMOTE_TO_LTM,
    DEDUPLICATION_THRESHOLD,
    DEFAULT_SCORING_WEIGHTS,
    EXISTING_POOL_SIZE,
    INTERFERENCE_MIN_SIMILARITY,
    INTERFERENCE_MAX_SIMILARITY,
    INTERFERENCE_PENALTY,
    PROJECT_LEVEL_CLASSIFICATIONS,
    RECENCY_WINDOW_HOURS,
)
from context_sweep import MemoryCandidate
from memory_store import MemoryStore, MemoryUnit
from text_similarity import word_jaccard

logger = logging.getLogger(__name__)


def calculate_strength(features: Dict[str, float], weights: Optional[Dict[str, float]] = None) -> float:
    """
    Blend the seven feature scores into a strength in [0, 1].

    Args:
        features: recency (hours), frequency (count) and the five [0, 1] scores
        weights: Feature weights; interference should be negative

    Returns:
        Clamped weighted sum
    """
    weights = weights or DEFAULT_SCORING_WEIGHTS

    recency = features.get("recency", 0.0)
    frequency = features.get("frequency", 0)

    recency_score = 1 - min(1.0, recency / RECENCY_WINDOW_HOURS)
    frequency_score = min(1.0, math.log(frequency + 1) / math.log(10))

    strength = (
        weights["recency"] * recency_score
        + weights["frequency"] * frequency_score
        + weights["importance"] * features.get("importance", 0.0)
        + weights["utility"] * features.get("utility", 0.0)
        + weights["novelty"] * features.get("novelty", 0.0)
        + weights["confidence"] * features.get("confidence", 0.0)
        + weights["interference"] * features.get("interference", 0.0)
    )
    return max(0.0, min(1.0, strength))


def _max_similarity(summary: str, pool: Sequence[MemoryUnit]) -> float:
    return max((word_jaccard(summary, m.summary) for m in pool), default=0.0)


def calculate_novelty(summary: str, pool: Sequence[MemoryUnit]) -> float:
    """1 - highest similarity to the pool (1.0 for an empty pool)"""
    if not pool:
        return 1.0
    return 1.0 - _max_similarity(summary, pool)


def detect_interference(summary: str, pool: Sequence[MemoryUnit]) -> float:
    """
    Interference from memories on a similar topic with different content:
    the max of similarity * 0.5 over pool entries whose similarity lies
    strictly between the interference bounds.
    """
    interference = 0.0
    for memory in pool:
        similarity = word_jaccard(summary, memory.summary)
        if INTERFERENCE_MIN_SIMILARITY < similarity < INTERFERENCE_MAX_SIMILARITY:
            interference = max(interference, similarity * 0.5)
    return interference


def is_duplicate(summary: str, pool: Sequence[MemoryUnit], threshold: float = DEDUPLICATION_THRESHOLD) -> bool:
    return any(word_jaccard(summary, m.summary) >= threshold for m in pool)


def extract_tags(candidate: MemoryCandidate) -> List[str]:
    tags = [candidate.classification]
    for signal in candidate.importance_signals:
        if signal.type not in tags:
            tags.append(signal.type)
    return tags


class SelectiveMemory:
    """Turns candidates into persisted memory units"""

    def __init__(self, store: MemoryStore, config: Optional[Dict[str, Any]] = None,
                 scoring_weights: Optional[Dict[str, float]] = None, embedding_worker=None):
        config = config or {}
        self.store = store
        self.weights = {**DEFAULT_SCORING_WEIGHTS, **(scoring_weights or {})}
        self.auto_promote = list(config.get("auto_promote_to_ltm", AUTO_PROMOTE_TO_LTM))
        self.dedup_threshold = config.get("deduplication_threshold", DEDUPLICATION_THRESHOLD)
        self.embedding_worker = embedding_worker

    def determine_store(self, classification: str) -> str:
        return STORE_LTM if classification in self.auto_promote else STORE_STM

    def process_candidates(self, candidates: List[MemoryCandidate], session_id: Optional[str] = None,
                           project_scope: Optional[str] = None) -> List[MemoryUnit]:
        """
        Score and persist candidates.

        The pool of existing memories is loaded once, before any candidate is
        stored, so duplicates are judged against the same pool regardless of
        candidate order.

        Returns:
            The memory units that were created
        """
        if not candidates:
            return []

        pool = self.store.get_top_memories(EXISTING_POOL_SIZE)
        created = []

        for candidate in candidates:
            if is_duplicate(candidate.summary, pool, self.dedup_threshold):
                logger.debug("Skipping duplicate candidate: %s", candidate.summary[:60])
                continue

            memory = self._create_memory(candidate, pool, session_id, project_scope)
            created.append(memory)

            if self.embedding_worker is not None:
                self.embedding_worker.enqueue(memory.id, memory.summary)

        logger.info("Stored %d of %d candidates", len(created), len(candidates))
        return created

    def _create_memory(self, candidate: MemoryCandidate, pool: Sequence[MemoryUnit],
                       session_id: Optional[str], project_scope: Optional[str]) -> MemoryUnit:
        features = {
            "recency": 0.0,
            "frequency": 1,
            "importance": candidate.preliminary_importance,
            "utility": 0.5,
            "novelty": calculate_novelty(candidate.summary, pool),
            "confidence": candidate.confidence,
            "interference": 0.0,
        }
        strength = calculate_strength(features, self.weights)

        memory = self.store.create_memory(MemoryUnit(
            id="",
            store=self.determine_store(candidate.classification),
            classification=candidate.classification,
            summary=candidate.summary,
            session_id=session_id,
            source_event_ids=list(candidate.source_event_ids),
            project_scope=project_scope if candidate.classification in PROJECT_LEVEL_CLASSIFICATIONS else None,
            strength=strength,
            tags=extract_tags(candidate),
            **features,
        ))

        interference = detect_interference(candidate.summary, pool)
        if interference > 0:
            memory.strength = max(0.0, min(1.0, strength * (1 - interference * INTERFERENCE_PENALTY)))
            self.store.update_memory_strength(memory.id, memory.strength)

        return memory
