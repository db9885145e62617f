"""
Memory storage system for MemorySieve

SQLite-backed record of sessions, events and memory units. Memories are never
deleted; decay, consolidation and feedback only move them between stores
(stm -> ltm) and statuses (active -> decayed/pinned/forgotten).
"""

import json
import logging
import math
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from constants import (
    STORE_STM,
    STORE_LTM,
    STATUS_ACTIVE,
    STATUS_DECAYED,
    STATUS_PINNED,
    STATUS_FORGOTTEN,
    MEMORY_STORES,
    MEMORY_STATUSES,
    SESSION_STATUSES,
    USER_LEVEL_CLASSIFICATIONS,
    FEEDBACK_TYPES,
    RETRIEVAL_FEEDBACK_TYPES,
    STM_DECAY_RATE,
    LTM_DECAY_RATE,
    DECAY_THRESHOLD,
    STM_TO_LTM_STRENGTH_THRESHOLD,
    STM_TO_LTM_FREQUENCY_THRESHOLD,
    AUTO_PROMOTE_TO_LTM,
    REMEMBER_IMPORTANCE_BOOST,
)
from semantic_search import serialize_embedding, deserialize_embedding

logger = logging.getLogger(__name__)

FEEDBACK_STATUS = {"pin": STATUS_PINNED, "forget": STATUS_FORGOTTEN}


class NotInitializedError(RuntimeError):
    """Raised when the store or engine is used before init()"""


@dataclass
class Session:
    """A host session grouping events and the memories created from them"""
    id: str
    project: Optional[str]
    started_at: str
    ended_at: Optional[str] = None
    status: str = "active"
    metadata: Dict[str, Any] = field(default_factory=dict)
    message_watermark: int = 0


@dataclass
class Event:
    """One captured conversational unit (immutable once stored)"""
    id: str
    session_id: str
    hook_type: str
    timestamp: str
    content: str
    tool_name: Optional[str] = None
    tool_input: Optional[str] = None
    tool_output: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MemoryUnit:
    """A persisted memory with its feature scores and derived strength"""
    id: str
    store: str
    classification: str
    summary: str
    session_id: Optional[str] = None
    source_event_ids: List[str] = field(default_factory=list)
    project_scope: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    last_accessed_at: Optional[str] = None
    recency: float = 0.0
    frequency: int = 1
    importance: float = 0.5
    utility: float = 0.5
    novelty: float = 1.0
    confidence: float = 0.5
    interference: float = 0.0
    strength: float = 0.0
    decay_rate: float = STM_DECAY_RATE
    tags: List[str] = field(default_factory=list)
    status: str = STATUS_ACTIVE
    version: int = 1
    embedding: Optional[List[float]] = None


MEMORY_COLUMNS = (
    "id", "session_id", "store", "classification", "summary", "source_event_ids",
    "project_scope", "created_at", "updated_at", "last_accessed_at", "recency",
    "frequency", "importance", "utility", "novelty", "confidence", "interference",
    "strength", "decay_rate", "tags", "status", "version", "embedding",
)


def _now() -> str:
    return datetime.now().isoformat()


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryStore:
    """
    Durable store for sessions, events and memory units.

    Call init() before use; every other operation raises NotInitializedError
    until then.
    """

    def __init__(self, db_path: str = ".memorysieve/memory.db", config: Optional[Dict[str, Any]] = None):
        """
        Args:
            db_path: SQLite database file (":memory:" for a throwaway store)
            config: The `memory` config section (decay rates, promotion thresholds)
        """
        self.db_path = db_path
        config = config or {}
        self.stm_decay_rate = config.get("stm_decay_rate", STM_DECAY_RATE)
        self.ltm_decay_rate = config.get("ltm_decay_rate", LTM_DECAY_RATE)
        self.strength_threshold = config.get("stm_to_ltm_strength_threshold", STM_TO_LTM_STRENGTH_THRESHOLD)
        self.frequency_threshold = config.get("stm_to_ltm_frequency_threshold", STM_TO_LTM_FREQUENCY_THRESHOLD)
        self.auto_promote = list(config.get("auto_promote_to_ltm", AUTO_PROMOTE_TO_LTM))

        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._in_transaction = False

    # ==================== LIFECYCLE ====================

    def init(self):
        """Open the database and create the schema (safe to call twice)"""
        if self.conn is not None:
            return
        if self.db_path != ":memory:":
            Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
            path = str(Path(self.db_path).expanduser())
        else:
            path = self.db_path
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_schema()
        logger.debug("Memory store opened at %s", path)

    @property
    def initialized(self) -> bool:
        return self.conn is not None

    def close(self):
        with self._lock:
            if self.conn is not None:
                self.conn.close()
                self.conn = None

    def __enter__(self):
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _ensure_init(self):
        if self.conn is None:
            raise NotInitializedError("MemoryStore.init() must be called first")

    def _init_schema(self):
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    project TEXT,
                    started_at TEXT NOT NULL,
                    ended_at TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    metadata TEXT,
                    message_watermark INTEGER NOT NULL DEFAULT 0
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    hook_type TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    content TEXT,
                    tool_name TEXT,
                    tool_input TEXT,
                    tool_output TEXT,
                    metadata TEXT,
                    FOREIGN KEY (session_id) REFERENCES sessions(id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS memory_units (
                    id TEXT PRIMARY KEY,
                    session_id TEXT,
                    store TEXT NOT NULL,
                    classification TEXT NOT NULL,
                    summary TEXT NOT NULL,
                    source_event_ids TEXT,
                    project_scope TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_accessed_at TEXT,
                    recency REAL,
                    frequency INTEGER,
                    importance REAL,
                    utility REAL,
                    novelty REAL,
                    confidence REAL,
                    interference REAL,
                    strength REAL NOT NULL,
                    decay_rate REAL NOT NULL,
                    tags TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    version INTEGER NOT NULL DEFAULT 1,
                    embedding BLOB
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS feedback (
                    id TEXT PRIMARY KEY,
                    memory_id TEXT NOT NULL,
                    type TEXT NOT NULL,
                    content TEXT,
                    timestamp TEXT NOT NULL,
                    FOREIGN KEY (memory_id) REFERENCES memory_units(id)
                );
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS retrieval_logs (
                    id TEXT PRIMARY KEY,
                    session_id TEXT,
                    memory_id TEXT NOT NULL,
                    query TEXT,
                    timestamp TEXT NOT NULL,
                    was_used INTEGER NOT NULL DEFAULT 0,
                    user_feedback TEXT,
                    relevance_score REAL
                );
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_events_session ON events(session_id);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_mem_store_status ON memory_units(store, status);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_mem_strength ON memory_units(strength);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_mem_scope ON memory_units(project_scope);")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_feedback_memory ON feedback(memory_id);")

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run statements as one unit of work. Nested use joins the outer
        transaction, so a whole pass commits or rolls back together.
        """
        with self._lock:
            if self._in_transaction:
                yield self.conn
                return
            self._in_transaction = True
            try:
                yield self.conn
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise
            finally:
                self._in_transaction = False

    def _fetchall(self, sql: str, params=()) -> List[sqlite3.Row]:
        self._ensure_init()
        with self._lock:
            return self.conn.execute(sql, params).fetchall()

    def _fetchone(self, sql: str, params=()) -> Optional[sqlite3.Row]:
        self._ensure_init()
        with self._lock:
            return self.conn.execute(sql, params).fetchone()

    # ==================== SESSIONS ====================

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            project=row["project"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            status=row["status"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            message_watermark=row["message_watermark"] or 0,
        )

    def create_session(self, project: Optional[str] = None, metadata: Optional[Dict] = None) -> Session:
        self._ensure_init()
        session = Session(id=_new_id(), project=project, started_at=_now(), metadata=metadata or {})
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO sessions (id, project, started_at, status, metadata, message_watermark) "
                "VALUES (?, ?, ?, ?, ?, 0)",
                (session.id, session.project, session.started_at, session.status, json.dumps(session.metadata)),
            )
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        row = self._fetchone("SELECT * FROM sessions WHERE id = ?", (session_id,))
        return self._row_to_session(row) if row else None

    def get_active_sessions(self) -> List[Session]:
        rows = self._fetchall("SELECT * FROM sessions WHERE status = 'active' ORDER BY started_at DESC")
        return [self._row_to_session(r) for r in rows]

    def end_session(self, session_id: str, status: str = "completed") -> bool:
        """Close a session. Returns False if the id is unknown."""
        self._ensure_init()
        if status not in SESSION_STATUSES:
            raise ValueError(f"Invalid session status: {status}")
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET status = ?, ended_at = ? WHERE id = ?",
                (status, _now(), session_id),
            )
        return cursor.rowcount > 0

    def get_message_watermark(self, session_id: str) -> int:
        row = self._fetchone("SELECT message_watermark FROM sessions WHERE id = ?", (session_id,))
        return row["message_watermark"] if row else 0

    def update_message_watermark(self, session_id: str, watermark: int):
        self._ensure_init()
        with self._transaction() as conn:
            conn.execute("UPDATE sessions SET message_watermark = ? WHERE id = ?", (watermark, session_id))

    # ==================== EVENTS ====================

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            session_id=row["session_id"],
            hook_type=row["hook_type"],
            timestamp=row["timestamp"],
            content=row["content"] or "",
            tool_name=row["tool_name"],
            tool_input=row["tool_input"],
            tool_output=row["tool_output"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        )

    def create_event(
        self,
        session_id: str,
        hook_type: str,
        content: str = "",
        tool_name: Optional[str] = None,
        tool_input: Optional[str] = None,
        tool_output: Optional[str] = None,
        metadata: Optional[Dict] = None,
    ) -> Event:
        self._ensure_init()
        event = Event(
            id=_new_id(),
            session_id=session_id,
            hook_type=hook_type,
            timestamp=_now(),
            content=content or "",
            tool_name=tool_name,
            tool_input=tool_input,
            tool_output=tool_output,
            metadata=metadata or {},
        )
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO events (id, session_id, hook_type, timestamp, content, tool_name, "
                "tool_input, tool_output, metadata) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (event.id, event.session_id, event.hook_type, event.timestamp, event.content,
                 event.tool_name, event.tool_input, event.tool_output, json.dumps(event.metadata)),
            )
        return event

    def get_session_events(self, session_id: str, since_watermark: int = 0) -> List[Event]:
        """Events of a session in capture order, skipping the first `since_watermark`"""
        rows = self._fetchall(
            "SELECT * FROM events WHERE session_id = ? ORDER BY rowid LIMIT -1 OFFSET ?",
            (session_id, max(0, since_watermark)),
        )
        return [self._row_to_event(r) for r in rows]

    def get_recent_events(self, limit: int = 50) -> List[Event]:
        rows = self._fetchall("SELECT * FROM events ORDER BY rowid DESC LIMIT ?", (limit,))
        return [self._row_to_event(r) for r in rows]

    # ==================== MEMORY UNITS ====================

    @staticmethod
    def _row_to_memory(row: sqlite3.Row) -> MemoryUnit:
        return MemoryUnit(
            id=row["id"],
            session_id=row["session_id"],
            store=row["store"],
            classification=row["classification"],
            summary=row["summary"],
            source_event_ids=json.loads(row["source_event_ids"]) if row["source_event_ids"] else [],
            project_scope=row["project_scope"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_accessed_at=row["last_accessed_at"],
            recency=row["recency"] or 0.0,
            frequency=row["frequency"] or 0,
            importance=row["importance"] or 0.0,
            utility=row["utility"] or 0.0,
            novelty=row["novelty"] or 0.0,
            confidence=row["confidence"] or 0.0,
            interference=row["interference"] or 0.0,
            strength=row["strength"],
            decay_rate=row["decay_rate"],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            status=row["status"],
            version=row["version"],
            embedding=deserialize_embedding(row["embedding"]),
        )

    def create_memory(self, memory: MemoryUnit) -> MemoryUnit:
        """
        Persist a new memory unit.

        Missing id/timestamps are filled in and the decay rate is taken from
        the memory's store.
        """
        self._ensure_init()
        if memory.store not in MEMORY_STORES:
            raise ValueError(f"Invalid store: {memory.store}")

        now = _now()
        memory.id = memory.id or _new_id()
        memory.created_at = memory.created_at or now
        memory.updated_at = memory.updated_at or now
        memory.decay_rate = self.ltm_decay_rate if memory.store == STORE_LTM else self.stm_decay_rate

        values = {
            "id": memory.id,
            "session_id": memory.session_id,
            "store": memory.store,
            "classification": memory.classification,
            "summary": memory.summary,
            "source_event_ids": json.dumps(memory.source_event_ids),
            "project_scope": memory.project_scope,
            "created_at": memory.created_at,
            "updated_at": memory.updated_at,
            "last_accessed_at": memory.last_accessed_at,
            "recency": memory.recency,
            "frequency": memory.frequency,
            "importance": memory.importance,
            "utility": memory.utility,
            "novelty": memory.novelty,
            "confidence": memory.confidence,
            "interference": memory.interference,
            "strength": memory.strength,
            "decay_rate": memory.decay_rate,
            "tags": json.dumps(memory.tags),
            "status": memory.status,
            "version": memory.version,
            "embedding": serialize_embedding(memory.embedding) if memory.embedding else None,
        }
        placeholders = ", ".join("?" for _ in MEMORY_COLUMNS)
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO memory_units ({', '.join(MEMORY_COLUMNS)}) VALUES ({placeholders})",
                tuple(values[c] for c in MEMORY_COLUMNS),
            )
        return memory

    def get_memory(self, memory_id: str) -> Optional[MemoryUnit]:
        row = self._fetchone("SELECT * FROM memory_units WHERE id = ?", (memory_id,))
        return self._row_to_memory(row) if row else None

    def find_memories_by_prefix(self, prefix: str) -> List[MemoryUnit]:
        """Look up memories by id prefix (the short ids shown in indexes)"""
        rows = self._fetchall("SELECT * FROM memory_units WHERE id LIKE ?", (prefix + "%",))
        return [self._row_to_memory(r) for r in rows]

    def get_memories_by_store(self, store: str, status: Optional[str] = STATUS_ACTIVE) -> List[MemoryUnit]:
        if status:
            rows = self._fetchall(
                "SELECT * FROM memory_units WHERE store = ? AND status = ? ORDER BY strength DESC",
                (store, status),
            )
        else:
            rows = self._fetchall(
                "SELECT * FROM memory_units WHERE store = ? ORDER BY strength DESC", (store,)
            )
        return [self._row_to_memory(r) for r in rows]

    def get_top_memories(self, limit: int = 200, store: Optional[str] = None) -> List[MemoryUnit]:
        """Strongest active memories, optionally restricted to one store"""
        sql = "SELECT * FROM memory_units WHERE status = 'active'"
        params: List[Any] = []
        if store:
            sql += " AND store = ?"
            params.append(store)
        sql += " ORDER BY strength DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_memory(r) for r in self._fetchall(sql, params)]

    def get_memories_by_scope(self, current_project: Optional[str] = None, limit: int = 50,
                              store: Optional[str] = None) -> List[MemoryUnit]:
        """
        Active memories visible from current_project: every user-level
        memory plus project-level memories scoped to that project.
        """
        placeholders = ", ".join("?" for _ in USER_LEVEL_CLASSIFICATIONS)
        sql = (
            "SELECT * FROM memory_units WHERE status = 'active' "
            f"AND (classification IN ({placeholders}) "
            "OR (project_scope IS NOT NULL AND project_scope = ?))"
        )
        params: List[Any] = list(USER_LEVEL_CLASSIFICATIONS) + [current_project or ""]
        if store:
            sql += " AND store = ?"
            params.append(store)
        sql += " ORDER BY strength DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_memory(r) for r in self._fetchall(sql, params)]

    def get_user_level_memories(self, limit: int = 50) -> List[MemoryUnit]:
        placeholders = ", ".join("?" for _ in USER_LEVEL_CLASSIFICATIONS)
        rows = self._fetchall(
            f"SELECT * FROM memory_units WHERE status = 'active' AND classification IN ({placeholders}) "
            "ORDER BY strength DESC LIMIT ?",
            tuple(USER_LEVEL_CLASSIFICATIONS) + (limit,),
        )
        return [self._row_to_memory(r) for r in rows]

    def get_project_memories(self, project: str, limit: int = 50) -> List[MemoryUnit]:
        rows = self._fetchall(
            "SELECT * FROM memory_units WHERE status = 'active' AND project_scope = ? "
            "ORDER BY strength DESC LIMIT ?",
            (project, limit),
        )
        return [self._row_to_memory(r) for r in rows]

    def get_session_memories(self, session_id: str) -> List[MemoryUnit]:
        rows = self._fetchall(
            "SELECT * FROM memory_units WHERE session_id = ? ORDER BY created_at", (session_id,)
        )
        return [self._row_to_memory(r) for r in rows]

    def list_memories(self, store: Optional[str] = None, status: Optional[str] = None,
                      limit: int = 50) -> List[MemoryUnit]:
        sql = "SELECT * FROM memory_units WHERE 1 = 1"
        params: List[Any] = []
        if store:
            sql += " AND store = ?"
            params.append(store)
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY strength DESC LIMIT ?"
        params.append(limit)
        return [self._row_to_memory(r) for r in self._fetchall(sql, params)]

    def update_memory_strength(self, memory_id: str, strength: float):
        self._ensure_init()
        with self._transaction() as conn:
            conn.execute(
                "UPDATE memory_units SET strength = ?, updated_at = ? WHERE id = ?",
                (max(0.0, min(1.0, strength)), _now(), memory_id),
            )

    def update_memory_status(self, memory_id: str, status: str):
        self._ensure_init()
        if status not in MEMORY_STATUSES:
            raise ValueError(f"Invalid status: {status}")
        with self._transaction() as conn:
            conn.execute(
                "UPDATE memory_units SET status = ?, updated_at = ?, version = version + 1 WHERE id = ?",
                (status, _now(), memory_id),
            )

    def increment_frequency(self, memory_id: str):
        self._ensure_init()
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                "UPDATE memory_units SET frequency = frequency + 1, last_accessed_at = ? WHERE id = ?",
                (now, memory_id),
            )

    def promote_to_ltm(self, memory_id: str):
        """Move a memory to long-term storage (one-way)"""
        self._ensure_init()
        with self._transaction() as conn:
            conn.execute(
                "UPDATE memory_units SET store = ?, decay_rate = ?, updated_at = ?, version = version + 1 "
                "WHERE id = ? AND store != ?",
                (STORE_LTM, self.ltm_decay_rate, _now(), memory_id, STORE_LTM),
            )

    def set_memory_embedding(self, memory_id: str, embedding: List[float]):
        self._ensure_init()
        with self._transaction() as conn:
            conn.execute(
                "UPDATE memory_units SET embedding = ? WHERE id = ?",
                (serialize_embedding(embedding), memory_id),
            )

    # ==================== DECAY & CONSOLIDATION ====================

    def apply_decay(self, now: Optional[datetime] = None) -> int:
        """
        Age every active memory: strength *= exp(-decay_rate * hours since
        updated_at). Memories falling under the decay threshold become
        `decayed`.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Number of memories whose strength or status changed
        """
        self._ensure_init()
        now = now or datetime.now()
        changed = 0
        newly_decayed = 0

        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT id, strength, decay_rate, updated_at FROM memory_units WHERE status = ?",
                (STATUS_ACTIVE,),
            ).fetchall()

            for row in rows:
                try:
                    strength = float(row["strength"])
                    hours = max(0.0, (now - datetime.fromisoformat(row["updated_at"])).total_seconds() / 3600)
                    new_strength = strength * math.exp(-float(row["decay_rate"]) * hours)
                except (TypeError, ValueError) as e:
                    logger.warning("Skipping memory %s during decay: %s", row["id"], e)
                    continue

                if new_strength == strength:
                    continue

                stamp = now.isoformat()
                if new_strength < DECAY_THRESHOLD:
                    conn.execute(
                        "UPDATE memory_units SET strength = ?, status = ?, updated_at = ? WHERE id = ?",
                        (new_strength, STATUS_DECAYED, stamp, row["id"]),
                    )
                    newly_decayed += 1
                else:
                    conn.execute(
                        "UPDATE memory_units SET strength = ?, updated_at = ? WHERE id = ?",
                        (new_strength, stamp, row["id"]),
                    )
                changed += 1

        logger.info("Decay pass updated %d memories (%d decayed)", changed, newly_decayed)
        return changed

    def run_consolidation(self) -> int:
        """
        Promote qualifying STM memories to LTM.

        A memory is promoted when its classification auto-promotes, its
        strength reaches the strength threshold or its frequency reaches the
        frequency threshold. Memories that are not promoted and have fallen
        under the decay threshold are marked `decayed`.

        Returns:
            Number of promoted memories
        """
        self._ensure_init()
        promoted = 0
        cleaned = 0

        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT id, classification, strength, frequency FROM memory_units WHERE store = ? AND status = ?",
                (STORE_STM, STATUS_ACTIVE),
            ).fetchall()

            for row in rows:
                try:
                    strength = float(row["strength"])
                    frequency = int(row["frequency"])
                except (TypeError, ValueError) as e:
                    logger.warning("Skipping memory %s during consolidation: %s", row["id"], e)
                    continue

                if (row["classification"] in self.auto_promote
                        or strength >= self.strength_threshold
                        or frequency >= self.frequency_threshold):
                    self.promote_to_ltm(row["id"])
                    promoted += 1
                elif strength < DECAY_THRESHOLD:
                    self.update_memory_status(row["id"], STATUS_DECAYED)
                    cleaned += 1

        logger.info("Consolidation promoted %d memories, cleaned up %d", promoted, cleaned)
        return promoted

    # ==================== FEEDBACK ====================

    def add_feedback(self, memory_id: str, feedback_type: str, content: Optional[str] = None) -> Optional[str]:
        """
        Record explicit feedback on a memory and apply its effect.

        pin -> pinned, forget -> forgotten, remember -> importance boost and
        LTM, correct -> recorded only.

        Returns:
            The feedback id, or None if the memory does not exist
        """
        self._ensure_init()
        if feedback_type not in FEEDBACK_TYPES:
            raise ValueError(f"Invalid feedback type: {feedback_type}")

        if self.get_memory(memory_id) is None:
            logger.info("Feedback %s ignored, unknown memory %s", feedback_type, memory_id)
            return None

        feedback_id = _new_id()
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO feedback (id, memory_id, type, content, timestamp) VALUES (?, ?, ?, ?, ?)",
                (feedback_id, memory_id, feedback_type, content, now),
            )

            if feedback_type in FEEDBACK_STATUS:
                # pinned and forgotten are terminal
                cursor = conn.execute(
                    "UPDATE memory_units SET status = ?, updated_at = ?, version = version + 1 "
                    "WHERE id = ? AND status IN (?, ?)",
                    (FEEDBACK_STATUS[feedback_type], now, memory_id, STATUS_ACTIVE, STATUS_DECAYED),
                )
                if cursor.rowcount == 0:
                    logger.info("Feedback %s left memory %s unchanged, status is terminal", feedback_type, memory_id)
            elif feedback_type == "remember":
                conn.execute(
                    "UPDATE memory_units SET importance = MIN(1.0, importance + ?), store = ?, "
                    "decay_rate = ?, updated_at = ?, version = version + 1 WHERE id = ?",
                    (REMEMBER_IMPORTANCE_BOOST, STORE_LTM, self.ltm_decay_rate, now, memory_id),
                )

        return feedback_id

    def get_feedback(self, memory_id: str) -> List[Dict[str, Any]]:
        rows = self._fetchall(
            "SELECT * FROM feedback WHERE memory_id = ? ORDER BY timestamp", (memory_id,)
        )
        return [dict(r) for r in rows]

    # ==================== RETRIEVAL LOGS ====================

    def log_retrieval(self, memory_id: str, query: Optional[str] = None, session_id: Optional[str] = None,
                      relevance_score: Optional[float] = None) -> str:
        self._ensure_init()
        log_id = _new_id()
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO retrieval_logs (id, session_id, memory_id, query, timestamp, was_used, relevance_score) "
                "VALUES (?, ?, ?, ?, ?, 0, ?)",
                (log_id, session_id, memory_id, query, _now(), relevance_score),
            )
        return log_id

    def mark_retrieval_used(self, log_id: str):
        self._ensure_init()
        with self._transaction() as conn:
            conn.execute("UPDATE retrieval_logs SET was_used = 1 WHERE id = ?", (log_id,))

    def add_retrieval_feedback(self, log_id: str, feedback: str):
        self._ensure_init()
        if feedback not in RETRIEVAL_FEEDBACK_TYPES:
            raise ValueError(f"Invalid retrieval feedback: {feedback}")
        with self._transaction() as conn:
            conn.execute("UPDATE retrieval_logs SET user_feedback = ? WHERE id = ?", (feedback, log_id))

    def get_retrieval_logs(self, memory_id: str) -> List[Dict[str, Any]]:
        rows = self._fetchall(
            "SELECT * FROM retrieval_logs WHERE memory_id = ? ORDER BY timestamp", (memory_id,)
        )
        return [dict(r) for r in rows]

    # ==================== STATS ====================

    def get_stats(self) -> Dict[str, Any]:
        """Per-store counts and average strength"""
        stats: Dict[str, Any] = {}
        for store in MEMORY_STORES:
            row = self._fetchone(
                """
                SELECT
                    SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END) AS active,
                    SUM(CASE WHEN status = 'decayed' THEN 1 ELSE 0 END) AS decayed,
                    SUM(CASE WHEN status = 'pinned' THEN 1 ELSE 0 END) AS pinned,
                    SUM(CASE WHEN status = 'forgotten' THEN 1 ELSE 0 END) AS forgotten,
                    AVG(CASE WHEN status = 'active' THEN strength END) AS avg_strength
                FROM memory_units WHERE store = ?
                """,
                (store,),
            )
            stats[store] = {
                "active": row["active"] or 0,
                "decayed": row["decayed"] or 0,
                "pinned": row["pinned"] or 0,
                "forgotten": row["forgotten"] or 0,
                "avg_strength": row["avg_strength"] or 0.0,
            }

        stats["total"] = sum(stats[s]["active"] + stats[s]["pinned"] for s in MEMORY_STORES)
        stats["total_including_decayed"] = stats["total"] + sum(stats[s]["decayed"] for s in MEMORY_STORES)
        stats["sessions"] = self._fetchone("SELECT COUNT(*) AS n FROM sessions")["n"]
        stats["events"] = self._fetchone("SELECT COUNT(*) AS n FROM events")["n"]
        return stats
