from __future__ import annotations

import logging
import threading

from knowledge.models import DocumentChunk
from knowledge.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class ChunkCache:
    """In-memory snapshot of every stored chunk.

    `load()` builds the new snapshot off to the side and swaps the reference
    when it is complete, so concurrent readers see either the old tuple or
    the new one.
    """

    def __init__(self, store: SQLiteStore) -> None:
        self.store = store
        self._snapshot: tuple[DocumentChunk, ...] | None = None
        self._load_lock = threading.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    def load(self) -> int:
        with self._load_lock:
            logger.info("Loading knowledge chunks from %s", self.store.db_path)
            snapshot = tuple(self.store.load_all_chunks())
            self._snapshot = snapshot
        logger.info("Loaded %d knowledge chunks", len(snapshot))
        return len(snapshot)

    def query(self) -> tuple[DocumentChunk, ...]:
        snapshot = self._snapshot
        if snapshot is None:
            logger.warning("Knowledge cache not loaded yet, returning no chunks")
            return ()
        return snapshot

    def invalidate(self) -> None:
        with self._load_lock:
            self._snapshot = None
