"""
Semantic Search for MemorySieve

Optional module that provides sentence embeddings using sentence-transformers.
Nothing in the engine requires it: when the package is missing, load_searcher()
returns None and similarity falls back to word overlap.

Install with: pip install sentence-transformers
"""

import logging
import queue
import threading
from array import array
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from constants import EMBEDDING_MODEL, EMBEDDING_CACHE_SIZE
from text_similarity import cosine_similarity

logger = logging.getLogger(__name__)


class SemanticSearcher:
    """
    Semantic similarity using sentence embeddings.
    Uses all-MiniLM-L6-v2 model (~80MB, runs on CPU).
    """

    def __init__(self, model_name: str = EMBEDDING_MODEL, cache_size: int = EMBEDDING_CACHE_SIZE):
        """
        Initialize the semantic searcher.

        Args:
            model_name: Sentence transformer model to use
            cache_size: LRU cache size for embeddings
        """
        try:
            from sentence_transformers import SentenceTransformer
            self.model = SentenceTransformer(model_name)
            self._embed = lru_cache(maxsize=cache_size)(self._embed_uncached)
            self.available = True
        except ImportError:
            self.model = None
            self.available = False
            raise ImportError(
                "Semantic search requires sentence-transformers. "
                "Install with: pip install sentence-transformers"
            )

    def _embed_uncached(self, text: str) -> Tuple[float, ...]:
        """Generate embedding for text (returns tuple for hashability)"""
        embedding = self.model.encode(text, convert_to_numpy=True)
        return tuple(embedding.tolist())

    def embed(self, text: str) -> List[float]:
        """Generate embedding for text with caching"""
        return list(self._embed(text))

    def similarity(self, embedding1: List[float], embedding2: List[float]) -> float:
        """Calculate cosine similarity between two embeddings"""
        return cosine_similarity(embedding1, embedding2)


def is_available() -> bool:
    """Check if semantic search is available"""
    try:
        import sentence_transformers  # noqa: F401
        return True
    except ImportError:
        return False


def load_searcher(config: Optional[Dict[str, Any]] = None) -> Optional[SemanticSearcher]:
    """
    Build a SemanticSearcher from the `embeddings` config section.

    Returns None when embeddings are disabled, the package is missing or the
    model fails to load.
    """
    config = config or {}
    if not config.get("enabled", True):
        return None
    if not is_available():
        logger.debug("Embeddings unavailable: sentence-transformers is not installed")
        return None

    try:
        return SemanticSearcher(
            model_name=config.get("model_name", EMBEDDING_MODEL),
            cache_size=config.get("cache_size", EMBEDDING_CACHE_SIZE),
        )
    except ImportError as e:
        logger.debug("Embeddings unavailable: %s", e)
    except Exception as e:
        logger.warning("Failed to load embedding model: %s", e)
    return None


# ==================== SERIALIZATION ====================

def serialize_embedding(embedding: List[float]) -> bytes:
    """Pack a vector as float32 bytes for the embedding BLOB column"""
    return array("f", embedding).tobytes()


def deserialize_embedding(blob: Optional[bytes]) -> Optional[List[float]]:
    if not blob:
        return None
    values = array("f")
    values.frombytes(blob)
    return values.tolist()


# ==================== BACKGROUND WORKER ====================

class EmbeddingWorker:
    """
    Computes embeddings off the calling thread and writes them back into the
    store by memory id.

    Jobs are fire-and-forget: a failing job is logged at debug level and the
    memory simply stays without an embedding.
    """

    def __init__(self, searcher: SemanticSearcher, store):
        self.searcher = searcher
        self.store = store
        self._queue: "queue.Queue[Optional[Tuple[str, str]]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name="memorysieve-embeddings", daemon=True)
            self._thread.start()

    def enqueue(self, memory_id: str, text: str):
        """Queue an embedding job, starting the worker thread if needed"""
        self.start()
        self._queue.put((memory_id, text))

    def drain(self):
        """Block until every queued job has been handled"""
        self._queue.join()

    def stop(self):
        if self._thread is not None and self._thread.is_alive():
            self._queue.put(None)
            self._thread.join()
        self._thread = None

    def _run(self):
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                memory_id, text = job
                self._process(memory_id, text)
            finally:
                self._queue.task_done()

    def _process(self, memory_id: str, text: str):
        try:
            self.store.set_memory_embedding(memory_id, self.searcher.embed(text))
        except Exception as e:
            logger.debug("Embedding failed for memory %s: %s", memory_id, e)
