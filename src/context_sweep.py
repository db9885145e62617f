"""
Context Sweep for MemorySieve

Turns a batch of captured events into memory candidates. Two detection
layers run over every user-authored chunk:

1. Multilingual keyword patterns (patterns.py)
2. Structural/pragmatic signals (structural_analyzer.py)

Signals under the signal threshold are dropped, surviving chunks go through
a content-quality gate, and the resulting candidates are merged when their
summaries overlap.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from constants import (
    CLASSIFICATION_EMOJIS,
    DEFAULT_EMOJI,
    SIGNAL_THRESHOLD,
    STRUCTURAL_WEIGHT,
    REGEX_CONFIDENCE,
    STRUCTURAL_CONFIDENCE,
    MIN_CHUNK_LENGTH,
    MIN_SENTENCE_LENGTH,
    MIN_SUMMARY_LENGTH,
    MAX_SUMMARY_LENGTH,
    CANDIDATE_MERGE_THRESHOLD,
    REPETITION_MIN_EVENTS,
)
from memory_store import Event
from patterns import ImportanceSignal, match_all_patterns, classify_by_patterns
from structural_analyzer import (
    ROLE_USER,
    ROLE_ASSISTANT,
    ROLE_TOOL,
    StructuralAnalyzer,
    analyze_structural_signals,
)
from text_similarity import word_jaccard

DEFAULT_SWEEP_CONFIG = {
    "structural_weight": STRUCTURAL_WEIGHT,
    "signal_threshold": SIGNAL_THRESHOLD,
    "enable_regex_patterns": True,
    "enable_structural_analysis": True,
    "regex_confidence": REGEX_CONFIDENCE,
    "structural_confidence": STRUCTURAL_CONFIDENCE,
}

TURN_PREFIX = re.compile(r"^(Human|User|Assistant|Tool Result|Tool Error):", re.MULTILINE)
ROLE_PREFIXES = (
    ("Human:", ROLE_USER),
    ("User:", ROLE_USER),
    ("Assistant:", ROLE_ASSISTANT),
    ("Tool Result:", ROLE_TOOL),
    ("Tool Error:", ROLE_TOOL),
)
CHUNK_TOOL_ERROR = re.compile(r"Tool Error:|error|exception|failed", re.IGNORECASE)

# Quality gate
TRUNCATION_MARKER = re.compile(r"\.\.\.\[truncated\]$|\.\.\.$|…$")
LINE_NUMBERED = re.compile(r"^\s*\d{1,5}:\s")
CODE_FENCE = re.compile(r"```[\s\S]*?```")
INLINE_CODE = re.compile(r"`[^`\n]+`")
SPECIAL_CHAR = re.compile(r"[{}\[\]()=><;|&\\]")
ALNUM_CHAR = re.compile(r"[a-zA-Z0-9]")
PATH_LINE = re.compile(r"^\s*(?:[A-Za-z]:\\|/[\w.-]|\./)[\w./-]+")

# Tool events
TOOL_ERROR = re.compile(
    r"\b(error|exception|failed|failure|cannot|can't|undefined|null pointer|stack trace|"
    r"traceback|syntax error|type error|reference error|uncaught)\b",
    re.IGNORECASE,
)
TOOL_RESOLUTION = re.compile(
    r"\b(fixed|resolved|solved|corrected|updated|changed|now works|working|success|"
    r"done|applied|patched)\b",
    re.IGNORECASE,
)
TOOL_ERROR_LINE = re.compile(r"\b(error|exception|failed|failure|cannot|can't)\b", re.IGNORECASE)
WINDOWS_PATH = re.compile(r"[A-Za-z]:\\[^\s:,]+")
UNIX_PATH = re.compile(r"/[^\s:,]{10,}")

LEADING_SYMBOLS = re.compile(r"^[\W_]+")

STOP_WORDS = frozenset([
    'the', 'a', 'an', 'is', 'are', 'was', 'were', 'be', 'been', 'being',
    'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could',
    'should', 'may', 'might', 'can', 'to', 'of', 'in', 'for', 'on', 'with',
    'at', 'by', 'from', 'as', 'into', 'through', 'during', 'before', 'after',
    'above', 'below', 'between', 'under', 'again', 'further', 'then', 'once',
    'here', 'there', 'when', 'where', 'why', 'how', 'all', 'each', 'few',
    'more', 'most', 'other', 'some', 'such', 'no', 'nor', 'not', 'only',
    'own', 'same', 'so', 'than', 'too', 'very', 'just', 'and', 'but', 'if',
    'or', 'because', 'until', 'while', 'this', 'that', 'these', 'those',
    'i', 'me', 'my', 'myself', 'we', 'our', 'ours', 'ourselves', 'you',
    'your', 'yours', 'yourself', 'yourselves', 'he', 'him', 'his', 'himself',
    'she', 'her', 'hers', 'herself', 'it', 'its', 'itself', 'they', 'them',
    'their', 'theirs', 'themselves', 'what', 'which', 'who', 'whom',
])

# Signal type -> classification, in priority order
SIGNAL_CLASSIFICATION = (
    (("bug_fix", "tool_failure"), "bugfix"),
    (("learning",), "learning"),
    (("constraint",), "constraint"),
    (("decision",), "decision"),
    (("preference",), "preference"),
    (("correction", "correction_pattern"), "learning"),
    (("elaboration", "structural_enumeration"), "procedural"),
)


@dataclass
class Chunk:
    """
    A segment of event text tagged with its speaker.

    For a user turn paired into an exchange, `reply` holds the assistant
    turn that answered it; `text` is always one speaker's words only.
    """
    text: str
    role: Optional[str] = None
    reply: Optional[str] = None


@dataclass
class MemoryCandidate:
    """An unscored extraction result, alive only for one sweep"""
    summary: str
    classification: str
    source_event_ids: List[str]
    importance_signals: List[ImportanceSignal]
    preliminary_importance: float
    extraction_method: str
    confidence: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def detect_role(text: str) -> Optional[str]:
    stripped = text.strip()
    for prefix, role in ROLE_PREFIXES:
        if stripped.startswith(prefix):
            return role
    return None


def _make_chunk(text: str) -> Chunk:
    role = detect_role(text)
    text = text.strip()
    if role:
        text = text.split(":", 1)[1].strip()
    return Chunk(text=text, role=role)


def split_into_turns(content: str) -> List[Chunk]:
    """Role-tagged turns; consecutive lines of one speaker form one turn."""
    turns: List[Chunk] = []

    for line in content.split("\n"):
        if TURN_PREFIX.match(line):
            role = detect_role(line)
            text = line.split(":", 1)[1].strip()
            if turns and turns[-1].role == role:
                turns[-1].text = f"{turns[-1].text}\n{text}"
            else:
                turns.append(Chunk(text=text, role=role))
        elif turns:
            turns[-1].text = f"{turns[-1].text}\n{line}"
        elif line.strip():
            turns.append(Chunk(text=line))

    for turn in turns:
        turn.text = turn.text.strip()
    return [t for t in turns if t.text]


def pair_exchanges(turns: List[Chunk]) -> List[Chunk]:
    """
    Attach each user turn's assistant answer as its reply.

    Assistant turns without a preceding user turn and tool turns stay as
    chunks of their own. Short user turns are dropped unless their exchange
    is long enough.
    """
    chunks = []
    i = 0
    while i < len(turns):
        turn = turns[i]
        i += 1
        if turn.role in (ROLE_ASSISTANT, ROLE_TOOL):
            chunks.append(turn)
            continue
        if i < len(turns) and turns[i].role == ROLE_ASSISTANT:
            turn.reply = turns[i].text
            i += 1
        if len(turn.text) + len(turn.reply or "") > MIN_CHUNK_LENGTH:
            chunks.append(turn)
    return chunks


def split_into_chunks(content: str) -> List[Chunk]:
    """
    Segment event text into role-tagged chunks.

    Strategies, in order:
    1. Blank-line paragraphs (only when there are no role prefixes)
    2. Role-prefixed turns, paired into (user, assistant) exchanges
    3. Sentences
    4. The whole text
    """
    has_turns = bool(TURN_PREFIX.search(content))

    if not has_turns:
        paragraphs = [p for p in re.split(r"\n\s*\n", content) if len(p.strip()) > MIN_CHUNK_LENGTH]
        if len(paragraphs) > 1:
            return [_make_chunk(p) for p in paragraphs]

    if has_turns:
        exchanges = pair_exchanges(split_into_turns(content))
        if exchanges:
            return exchanges

    sentences = [s for s in re.split(r"(?<=[.!?])\s+", content) if len(s.strip()) > MIN_SENTENCE_LENGTH]
    if len(sentences) > 1:
        return [_make_chunk(s) for s in sentences]

    return [_make_chunk(content)] if len(content) > MIN_CHUNK_LENGTH else []


def is_content_quality_acceptable(text: str) -> bool:
    """
    Reject chunks that are mostly tool output rather than prose.

    Raw file reads and code otherwise leak strong keywords (for example
    "never" inside a code comment) into memory.
    """
    trimmed = text.strip()
    if len(trimmed) < MIN_CHUNK_LENGTH:
        return False

    if TRUNCATION_MARKER.search(trimmed):
        return False

    lines = trimmed.split("\n")
    numbered = [line for line in lines if LINE_NUMBERED.match(line)]
    if len(lines) >= 3 and len(numbered) / len(lines) > 0.5:
        return False

    code_chars = sum(len(m) for m in CODE_FENCE.findall(trimmed))
    code_chars += sum(len(m) for m in INLINE_CODE.findall(trimmed))
    if code_chars / max(1, len(trimmed)) > 0.6:
        return False

    prose = INLINE_CODE.sub("", CODE_FENCE.sub("", trimmed))
    special = len(SPECIAL_CHAR.findall(prose))
    alnum = len(ALNUM_CHAR.findall(prose))
    if special / max(1, alnum) > 0.3:
        return False

    path_lines = [line for line in lines if PATH_LINE.match(line.strip())]
    if len(lines) >= 2 and len(path_lines) / len(lines) > 0.7:
        return False

    return True


def calculate_preliminary_importance(signals: List[ImportanceSignal]) -> float:
    """Sum signal weights with 0.7^i diminishing returns, capped at 1."""
    if not signals:
        return 0.3
    ordered = sorted((s.weight for s in signals), reverse=True)
    return min(1.0, sum(w * (0.7 ** i) for i, w in enumerate(ordered)))


def classification_emoji(classification: str) -> str:
    return CLASSIFICATION_EMOJIS.get(classification, DEFAULT_EMOJI)


def format_summary(text: str, classification: str) -> str:
    return f"{classification_emoji(classification)} {text.strip()}"[:MAX_SUMMARY_LENGTH]


class ContextSweep:
    """Extracts memory candidates from raw events"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = {**DEFAULT_SWEEP_CONFIG, **(config or {})}
        self.analyzer = StructuralAnalyzer()

    def extract_candidates(self, events: List[Event]) -> List[MemoryCandidate]:
        """
        Extract memory candidates from a batch of events.

        Args:
            events: Events in capture order

        Returns:
            Deduplicated candidates, fragments removed
        """
        if not events:
            return []

        self.analyzer.reset()
        candidates = []

        for event in events:
            if event.hook_type == "UserPromptSubmit":
                candidate = self._extract_from_user_prompt(event)
                if candidate:
                    candidates.append(candidate)

        candidates.extend(self._extract_from_tool_events(
            [e for e in events if e.hook_type == "PostToolUse"]
        ))

        for event in events:
            if event.hook_type == "Stop":
                candidates.extend(self._extract_from_conversation(event))

        candidates.extend(self._detect_repetitions(events))

        merged = self._merge_similar(candidates)
        return [c for c in merged if len(LEADING_SYMBOLS.sub("", c.summary).strip()) >= MIN_SUMMARY_LENGTH]

    # ==================== USER PROMPTS ====================

    def _extract_from_user_prompt(self, event: Event) -> Optional[MemoryCandidate]:
        signals, has_regex, has_structural = self._collect_signals(event.content, None)
        return self._build_candidate(event, event.content, signals, has_regex, has_structural)

    # ==================== CONVERSATION TEXT ====================

    def _extract_from_conversation(self, event: Event) -> List[MemoryCandidate]:
        candidates = []
        follows_error = False

        for chunk in split_into_chunks(event.content):
            if chunk.role in (ROLE_ASSISTANT, ROLE_TOOL):
                # Kept in the history for flow signals, never extracted from
                self.analyzer.add_chunk(chunk.text, chunk.role)
                follows_error = bool(CHUNK_TOOL_ERROR.search(chunk.text))
                continue

            signals, has_regex, has_structural = self._collect_signals(chunk.text, chunk, follows_error)
            if chunk.reply:
                self.analyzer.add_chunk(chunk.reply, ROLE_ASSISTANT)
            follows_error = bool(CHUNK_TOOL_ERROR.search(chunk.reply or chunk.text))

            candidate = self._build_candidate(event, chunk.text, signals, has_regex, has_structural)
            if candidate:
                candidates.append(candidate)

        return candidates

    def _collect_signals(self, text: str, chunk: Optional[Chunk], follows_error: bool = False):
        """Run both layers over text; chunk=None means standalone analysis."""
        signals = []
        has_regex = False
        has_structural = False

        if self.config["enable_regex_patterns"]:
            regex_signals = match_all_patterns(text)
            if regex_signals:
                has_regex = True
                signals.extend(regex_signals)

        if self.config["enable_structural_analysis"]:
            if chunk is None:
                structural = self.analyzer.analyze_standalone(text)
            else:
                structural = self.analyzer.analyze(text, chunk.role or ROLE_USER, follows_error)
            weight = self.config["structural_weight"]
            structural = [replace(s, weight=s.weight * weight) for s in structural]
            if structural:
                has_structural = True
                signals.extend(structural)

        return signals, has_regex, has_structural

    def _build_candidate(self, event: Event, text: str, signals: List[ImportanceSignal],
                         has_regex: bool, has_structural: bool) -> Optional[MemoryCandidate]:
        significant = [s for s in signals if s.weight >= self.config["signal_threshold"]]
        if not significant:
            return None

        if not is_content_quality_acceptable(text):
            return None

        classification = self.classify(text, significant)
        confidence = self.config["regex_confidence"] if has_regex else self.config["structural_confidence"]

        return MemoryCandidate(
            summary=self.generate_summary(text, classification),
            classification=classification,
            source_event_ids=[event.id],
            importance_signals=significant,
            preliminary_importance=calculate_preliminary_importance(significant),
            extraction_method=self._extraction_method(has_regex, has_structural),
            confidence=confidence,
        )

    @staticmethod
    def _extraction_method(has_regex: bool, has_structural: bool) -> str:
        if has_regex and has_structural:
            return "multilingual_and_structural"
        if has_regex:
            return "multilingual_patterns"
        if has_structural:
            return "structural_analysis"
        return "conversation_analysis"

    # ==================== TOOL EVENTS ====================

    def _extract_from_tool_events(self, events: List[Event]) -> List[MemoryCandidate]:
        """Only an error together with a resolution in one event is memorable."""
        candidates = []

        for event in events:
            output = event.tool_output or ""
            tool_input = event.tool_input or ""

            has_error = bool(TOOL_ERROR.search(output) or TOOL_ERROR.search(tool_input))
            has_resolution = bool(TOOL_RESOLUTION.search(output) or TOOL_RESOLUTION.search(tool_input))
            if not (has_error and has_resolution):
                continue

            candidates.append(MemoryCandidate(
                summary=self._tool_summary(event),
                classification="bugfix",
                source_event_ids=[event.id],
                importance_signals=[ImportanceSignal("bug_fix", event.tool_name or "tool", 0.75)],
                preliminary_importance=0.75,
                extraction_method="tool_event_analysis",
                confidence=0.65,
            ))

        return candidates

    @staticmethod
    def _tool_summary(event: Event) -> str:
        emoji = classification_emoji("bugfix")
        tool_name = event.tool_name or "tool"

        error_line = None
        for line in (event.tool_output or "").split("\n"):
            line = line.strip()
            if TOOL_ERROR_LINE.search(line):
                error_line = line
                break

        if error_line:
            cleaned = UNIX_PATH.sub("<path>", WINDOWS_PATH.sub("<path>", error_line))[:200]
            return f"{emoji} {tool_name} error fixed: {cleaned}"

        return f"{emoji} {tool_name} error encountered and resolved"

    # ==================== REPETITION ====================

    def _detect_repetitions(self, events: List[Event]) -> List[MemoryCandidate]:
        concept_events: Dict[str, List[str]] = {}

        for event in events:
            for concept in self._key_concepts(event.content):
                concept_events.setdefault(concept, []).append(event.id)

        candidates = []
        for concept, event_ids in concept_events.items():
            count = len(event_ids)
            if count < REPETITION_MIN_EVENTS:
                continue
            weight = min(0.9, 0.5 + count * 0.1)
            candidates.append(MemoryCandidate(
                summary=f"Repeated concept: {concept} (mentioned {count} times)",
                classification="semantic",
                source_event_ids=event_ids,
                importance_signals=[ImportanceSignal("repeated_request", concept, weight)],
                preliminary_importance=weight,
                extraction_method="repetition_detection",
                confidence=0.5,
            ))

        return candidates

    @staticmethod
    def _key_concepts(content: str) -> List[str]:
        words = re.sub(r"[^a-z0-9\s]", " ", content.lower()).split()
        # dict keeps first-seen order while removing duplicates
        return list(dict.fromkeys(w for w in words if len(w) > 3 and w not in STOP_WORDS))

    # ==================== CLASSIFICATION & SUMMARY ====================

    @staticmethod
    def classify(text: str, signals: List[ImportanceSignal]) -> str:
        """Keyword classification first, then the dominant signal type."""
        by_pattern = classify_by_patterns(text)
        if by_pattern:
            return by_pattern

        types = {s.type for s in signals}
        for signal_types, classification in SIGNAL_CLASSIFICATION:
            if types.intersection(signal_types):
                return classification
        return "semantic"

    @staticmethod
    def generate_summary(content: str, classification: str) -> str:
        """Pick the most signal-dense sentence and prefix the classification emoji."""
        sentences = [s for s in re.split(r"[.!?]+", content) if len(s.strip()) > MIN_SENTENCE_LENGTH]
        if not sentences:
            return format_summary(content[:200], classification)

        best = sentences[0]
        best_score = 0.0
        for sentence in sentences:
            score = sum(s.weight for s in match_all_patterns(sentence))
            score += sum(s.weight * 0.5 for s in analyze_structural_signals(sentence))
            if score > best_score:
                best_score = score
                best = sentence

        return format_summary(best, classification)

    # ==================== MERGING ====================

    @staticmethod
    def _merge_similar(candidates: List[MemoryCandidate]) -> List[MemoryCandidate]:
        if len(candidates) <= 1:
            return candidates

        merged = []
        used = set()

        for i, base in enumerate(candidates):
            if i in used:
                continue
            current = base
            for j in range(i + 1, len(candidates)):
                if j in used:
                    continue
                other = candidates[j]
                if word_jaccard(current.summary, other.summary) > CANDIDATE_MERGE_THRESHOLD:
                    current = replace(
                        current,
                        source_event_ids=list(dict.fromkeys(current.source_event_ids + other.source_event_ids)),
                        importance_signals=current.importance_signals + other.importance_signals,
                        preliminary_importance=max(current.preliminary_importance, other.preliminary_importance),
                        confidence=max(current.confidence, other.confidence),
                    )
                    used.add(j)
            merged.append(current)
            used.add(i)

        return merged
