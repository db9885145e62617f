"""
Central constants for MemorySieve.

Tune decay rates, thresholds and scoring weights here.
"""

# Stores and statuses
STORE_STM = "stm"
STORE_LTM = "ltm"
MEMORY_STORES = [STORE_STM, STORE_LTM]

STATUS_ACTIVE = "active"
STATUS_DECAYED = "decayed"
STATUS_PINNED = "pinned"
STATUS_FORGOTTEN = "forgotten"
MEMORY_STATUSES = [STATUS_ACTIVE, STATUS_DECAYED, STATUS_PINNED, STATUS_FORGOTTEN]

SESSION_STATUSES = ["active", "completed", "abandoned"]

# Hook types captured from the host agent
HOOK_TYPES = ["SessionStart", "UserPromptSubmit", "PostToolUse", "Stop", "SessionEnd"]

# Classifications and their scope
USER_LEVEL_CLASSIFICATIONS = ["constraint", "preference", "learning", "procedural"]
PROJECT_LEVEL_CLASSIFICATIONS = ["decision", "bugfix", "episodic", "semantic"]

CLASSIFICATION_EMOJIS = {
    "episodic": "📅",
    "semantic": "💡",
    "procedural": "📋",
    "bugfix": "🔴",
    "learning": "🎓",
    "preference": "⭐",
    "decision": "🤔",
    "constraint": "🚫",
}
DEFAULT_EMOJI = "📝"

FEEDBACK_TYPES = ["remember", "forget", "pin", "correct"]
RETRIEVAL_FEEDBACK_TYPES = ["positive", "negative", "neutral"]

# Decay and consolidation
STM_DECAY_RATE = 0.05  # per hour
LTM_DECAY_RATE = 0.01  # per hour
DECAY_THRESHOLD = 0.1
STM_TO_LTM_STRENGTH_THRESHOLD = 0.7
STM_TO_LTM_FREQUENCY_THRESHOLD = 3
AUTO_PROMOTE_TO_LTM = ["bugfix", "learning", "decision"]
REMEMBER_IMPORTANCE_BOOST = 0.3

# Strength scoring weights (interference is a penalty)
DEFAULT_SCORING_WEIGHTS = {
    "recency": 0.20,
    "frequency": 0.15,
    "importance": 0.25,
    "utility": 0.20,
    "novelty": 0.10,
    "confidence": 0.10,
    "interference": -0.10,
}
RECENCY_WINDOW_HOURS = 168

# Selective memory
DEDUPLICATION_THRESHOLD = 0.7
EXISTING_POOL_SIZE = 200
INTERFERENCE_MIN_SIMILARITY = 0.3
INTERFERENCE_MAX_SIMILARITY = 0.8
INTERFERENCE_PENALTY = 0.2
MAX_MEMORIES_PER_STOP = 4

# Context sweep
SIGNAL_THRESHOLD = 0.5
STRUCTURAL_WEIGHT = 1.0
REGEX_CONFIDENCE = 0.75
STRUCTURAL_CONFIDENCE = 0.5
MIN_CHUNK_LENGTH = 20
MIN_SENTENCE_LENGTH = 10
MIN_SUMMARY_LENGTH = 20
MAX_SUMMARY_LENGTH = 300
CANDIDATE_MERGE_THRESHOLD = 0.7
REPETITION_MIN_EVENTS = 3

# Retrieval
DEFAULT_RETRIEVAL_LIMIT = 20
DEFAULT_MAX_CONTEXT_TOKENS = 4000
MIN_POOL_SIZE = 50
MAX_POOL_SIZE = 200
MAX_STM_INJECTION = 3
MAX_TOTAL_INJECTION = 7
QUERY_CONTEXT_LIMIT = 3
TAG_MATCH_BONUS = 0.15
CONFLICT_OVERLAP_THRESHOLD = 0.25

# Embeddings (optional)
EMBEDDING_MODEL = "all-MiniLM-L6-v2"
EMBEDDING_CACHE_SIZE = 1000
