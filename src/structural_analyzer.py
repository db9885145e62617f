"""
Structural signal detection for MemorySieve.

Language-agnostic importance cues that do not depend on any keyword list:
typographic emphasis, conversation flow (short corrections after long
answers, repeated requests, elaborations), discourse markers and meta
references such as stack traces, paths and URLs.

Code, paths, URLs and "Term: definition" lines carry deliberately low
weights so that on their own they stay under the sweep's signal threshold.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from patterns import ImportanceSignal

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"


@dataclass
class ChunkContext:
    """A chunk of conversation with its position and speaker"""
    text: str
    index: int
    role: Optional[str] = None
    follows_tool_error: bool = False


# Typography
MARKDOWN_EMPHASIS = re.compile(r"\*\*[^*]+\*\*|__[^_]+__|\*[^*]+\*|_[^_]+_")
QUOTED_SPAN = re.compile(r"\"[^\"]{5,}\"|'[^']{5,}'|「[^」]+」|«[^»]+»")
CODE_SPAN = re.compile(r"```[\s\S]*?```|`[^`]+`")

# Discourse markers
ARROW = re.compile(r"[→⇒]|=>|->")
CONTRAST = re.compile(r"\s—\s|\s--\s|\bvs\.?\b|\bversus\b", re.IGNORECASE)
LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]\s|[a-z][.)]\s|[-*•]\s)", re.MULTILINE)
DEFINITION = re.compile(r"^[A-Z][^:]{2,30}:\s", re.MULTILINE)

# Meta references
FILE_PATH = re.compile(r"(?:/[\w.-]+)+\.\w+|[A-Z]:\\(?:[\w.-]+\\)*[\w.-]+\.\w+")
STACK_TRACES = [
    re.compile(r"at\s+\w+\s+\([^)]+:\d+:\d+\)"),           # JavaScript
    re.compile(r"File \"[^\"]+\", line \d+"),              # Python
    re.compile(r"^\s+at\s+[\w.$]+\([^)]+\)", re.MULTILINE),  # Java
    re.compile(r"Traceback \(most recent call last\)"),
    re.compile(r"Error:.*\n\s+at\s"),
]
URL = re.compile(r"https?://\S+")

ERROR_WORDS = ("error", "failed", "exception")


def analyze_typography(text: str) -> List[ImportanceSignal]:
    """Detect caps, exclamations, markdown emphasis, quotes and code spans."""
    signals = []

    caps_ratio = _caps_ratio(text)
    if caps_ratio > 0.3 and len(text) > 10:
        signals.append(ImportanceSignal(
            "typography_emphasis", "ALL_CAPS", min(0.7, 0.4 + caps_ratio * 0.4)
        ))

    exclamation_density = text.count("!") / max(1, len(text) / 50)
    if exclamation_density > 0.5:
        signals.append(ImportanceSignal(
            "typography_emphasis", "exclamation", min(0.5, 0.3 + exclamation_density * 0.2)
        ))

    if MARKDOWN_EMPHASIS.search(text):
        signals.append(ImportanceSignal("typography_emphasis", "markdown_emphasis", 0.6))

    quote = QUOTED_SPAN.search(text)
    if quote:
        signals.append(ImportanceSignal("quoted_text", quote.group(0)[:30], 0.5))

    if CODE_SPAN.search(text):
        signals.append(ImportanceSignal("code_block", "code", 0.25))

    return signals


def _caps_ratio(text: str) -> float:
    letters = [c for c in text if ("a" <= c <= "z") or ("A" <= c <= "Z")]
    if len(letters) < 5:
        return 0.0
    uppercase = sum(1 for c in letters if c.isupper())
    return uppercase / len(letters)


def analyze_conversation_flow(chunk: ChunkContext, history: List[ChunkContext],
                              median_length: Optional[float] = None) -> List[ImportanceSignal]:
    """
    Detect signals that only make sense relative to earlier chunks.

    Args:
        chunk: The chunk under analysis (already part of history)
        history: All chunks seen so far in this sweep, in order
        median_length: Median chunk length, computed from history if omitted

    Returns:
        correction_pattern, repetition_pattern and/or elaboration signals
    """
    signals = []
    if len(history) < 2 or chunk.index == 0:
        return signals

    prev_chunk = history[chunk.index - 1]
    if chunk.role == ROLE_USER and prev_chunk.role == ROLE_ASSISTANT:
        ratio = len(chunk.text) / max(1, len(prev_chunk.text))
        if ratio < 0.2 and len(chunk.text) < 100:
            signals.append(ImportanceSignal("correction_pattern", "short_after_long", 0.7))

    if chunk.role == ROLE_USER:
        earlier_user_chunks = [c for c in history if c.role == ROLE_USER and c.index < chunk.index]
        for earlier in earlier_user_chunks[-3:]:
            overlap = _trigram_overlap(chunk.text, earlier.text)
            if overlap > 0.4:
                signals.append(ImportanceSignal(
                    "repetition_pattern", "trigram_overlap", min(0.8, 0.5 + overlap * 0.4)
                ))
                break

    if median_length is None:
        median_length = median_chunk_length(history)
    if len(chunk.text) > median_length * 2.5 and len(chunk.text) > 200:
        signals.append(ImportanceSignal("elaboration", "long_response", 0.6))

    return signals


def _trigrams(text: str) -> set:
    words = [w for w in text.lower().split() if len(w) > 2]
    return {" ".join(words[i:i + 3]) for i in range(len(words) - 2)}


def _trigram_overlap(text_a: str, text_b: str) -> float:
    trigrams_a = _trigrams(text_a)
    trigrams_b = _trigrams(text_b)
    if not trigrams_a or not trigrams_b:
        return 0.0
    return len(trigrams_a & trigrams_b) / min(len(trigrams_a), len(trigrams_b))


def median_chunk_length(chunks: List[ChunkContext]) -> float:
    if not chunks:
        return 100.0
    lengths = sorted(len(c.text) for c in chunks)
    mid = len(lengths) // 2
    if len(lengths) % 2 == 0:
        return (lengths[mid - 1] + lengths[mid]) / 2
    return float(lengths[mid])


def analyze_discourse_markers(text: str) -> List[ImportanceSignal]:
    """Detect arrows, contrasts, lists and colon-style definitions."""
    signals = []

    if ARROW.search(text):
        signals.append(ImportanceSignal("structural_enumeration", "arrow", 0.5))

    if CONTRAST.search(text):
        signals.append(ImportanceSignal("structural_enumeration", "contrast", 0.5))

    list_items = LIST_ITEM.findall(text)
    if len(list_items) >= 2:
        signals.append(ImportanceSignal(
            "structural_enumeration", "ordered_list", 0.5 + min(0.3, len(list_items) * 0.05)
        ))

    if DEFINITION.search(text):
        signals.append(ImportanceSignal("structural_enumeration", "definition", 0.3))

    return signals


def analyze_meta_signals(chunk: ChunkContext, history: List[ChunkContext]) -> List[ImportanceSignal]:
    """Detect error adjacency, file paths, stack traces and URLs."""
    signals = []
    text = chunk.text

    # One signal whether the error was flagged by the caller or is in the history
    if chunk.follows_tool_error or _follows_tool_error_chunk(chunk, history):
        signals.append(ImportanceSignal("meta_reference", "follows_error", 0.8))

    if FILE_PATH.search(text):
        signals.append(ImportanceSignal("meta_reference", "file_path", 0.25))

    if any(pattern.search(text) for pattern in STACK_TRACES):
        signals.append(ImportanceSignal("meta_reference", "stack_trace", 0.7))

    if URL.search(text):
        signals.append(ImportanceSignal("meta_reference", "url", 0.2))

    return signals


def _follows_tool_error_chunk(chunk: ChunkContext, history: List[ChunkContext]) -> bool:
    if not 0 < chunk.index <= len(history):
        return False
    prev_chunk = history[chunk.index - 1]
    prev_lower = prev_chunk.text.lower()
    return prev_chunk.role == ROLE_TOOL and any(w in prev_lower for w in ERROR_WORDS)


class StructuralAnalyzer:
    """
    Runs the four detectors, keeping a per-sweep history of chunks so the
    conversation-flow detector can look back.
    """

    def __init__(self):
        self.chunks: List[ChunkContext] = []
        self.median_length: Optional[float] = None

    def reset(self):
        """Forget all chunks (call at the start of each sweep)"""
        self.chunks = []
        self.median_length = None

    def add_chunk(self, text: str, role: Optional[str] = None,
                  follows_tool_error: bool = False) -> ChunkContext:
        chunk = ChunkContext(text, len(self.chunks), role, follows_tool_error)
        self.chunks.append(chunk)
        self.median_length = median_chunk_length(self.chunks)
        return chunk

    def analyze_chunk(self, chunk: ChunkContext) -> List[ImportanceSignal]:
        signals = analyze_typography(chunk.text)
        signals.extend(analyze_conversation_flow(chunk, self.chunks, self.median_length))
        signals.extend(analyze_discourse_markers(chunk.text))
        signals.extend(analyze_meta_signals(chunk, self.chunks))
        return signals

    def analyze(self, text: str, role: Optional[str] = None,
                follows_tool_error: bool = False) -> List[ImportanceSignal]:
        """Append text to the history and analyze it in context"""
        return self.analyze_chunk(self.add_chunk(text, role, follows_tool_error))

    def analyze_standalone(self, text: str) -> List[ImportanceSignal]:
        """Analyze text without conversation context (no flow signals)"""
        chunk = ChunkContext(text, 0)
        signals = analyze_typography(text)
        signals.extend(analyze_discourse_markers(text))
        signals.extend(analyze_meta_signals(chunk, [chunk]))
        return signals


def analyze_structural_signals(text: str) -> List[ImportanceSignal]:
    """Convenience wrapper for one-off standalone analysis."""
    return StructuralAnalyzer().analyze_standalone(text)
