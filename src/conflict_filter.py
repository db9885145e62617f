"""
Conflict filter for MemorySieve

Before memories are injected into a new session, pairs that contradict each
other on the same topic are resolved in favour of the stronger memory.

Two memories conflict when their summaries overlap (keyword Jaccard at or
above CONFLICT_OVERLAP_THRESHOLD) and one uses a word from one side of a
polarity pair while the other uses a word from the opposite side.
"""

import re
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from constants import CONFLICT_OVERLAP_THRESHOLD
from memory_store import MemoryUnit
from text_similarity import keyword_jaccard

POLARITY_PAIRS: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("never", "avoid", "dislike", "don't use", "do not use", "stop using", "remove"),
     ("always", "use", "prefer", "adopt", "start using", "add", "keep")),
    (("deprecated", "outdated", "old"),
     ("current", "latest", "new", "modern")),
    (("disable", "turn off", "skip"),
     ("enable", "turn on", "run")),
    (("reject", "block", "forbid"),
     ("accept", "allow", "permit")),
)


def _word_pattern(words: Sequence[str]):
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


POLARITY_PATTERNS = tuple((_word_pattern(neg), _word_pattern(pos)) for neg, pos in POLARITY_PAIRS)


@dataclass
class SuppressedMemory:
    """A memory dropped because a stronger one contradicts it"""
    memory: MemoryUnit
    winner: MemoryUnit
    conflicts_with: str


@dataclass
class ConflictFilterResult:
    clean: List[MemoryUnit] = field(default_factory=list)
    suppressed: List[SuppressedMemory] = field(default_factory=list)


def has_opposing_polarity(text_a: str, text_b: str) -> bool:
    for negative, positive in POLARITY_PATTERNS:
        a_negative = bool(negative.search(text_a))
        a_positive = bool(positive.search(text_a))
        b_negative = bool(negative.search(text_b))
        b_positive = bool(positive.search(text_b))

        if (a_negative and b_positive) or (a_positive and b_negative):
            return True

    return False


def are_conflicting(a: MemoryUnit, b: MemoryUnit) -> bool:
    if keyword_jaccard(a.summary, b.summary) < CONFLICT_OVERLAP_THRESHOLD:
        return False
    return has_opposing_polarity(a.summary, b.summary)


def choose_loser(a: MemoryUnit, b: MemoryUnit) -> MemoryUnit:
    """Weaker memory loses; on equal strength the older one does."""
    if a.strength != b.strength:
        return a if a.strength < b.strength else b
    return a if a.created_at < b.created_at else b


def filter_conflicts(memories: Sequence[MemoryUnit]) -> ConflictFilterResult:
    """
    Drop the weaker member of every contradicting pair.

    Args:
        memories: Memories in injection order (at most the injection budget,
            so the pairwise scan stays small)

    Returns:
        ConflictFilterResult with the surviving memories in their original
        order and the suppressed ones with the memory they lost against
    """
    suppressed: List[SuppressedMemory] = []
    suppressed_ids = set()

    for i, a in enumerate(memories):
        if a.id in suppressed_ids:
            continue
        for b in memories[i + 1:]:
            if b.id in suppressed_ids:
                continue
            if not are_conflicting(a, b):
                continue

            loser = choose_loser(a, b)
            winner = b if loser is a else a
            suppressed_ids.add(loser.id)
            suppressed.append(SuppressedMemory(loser, winner, winner.summary[:80]))

            if loser is a:
                break

    return ConflictFilterResult(
        clean=[m for m in memories if m.id not in suppressed_ids],
        suppressed=suppressed,
    )
