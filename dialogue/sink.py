from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
import logging
import threading
from typing import Any, Callable, Sequence

from knowledge.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


def _write_safe(operation: Callable[[], None], context: str) -> None:
    try:
        operation()
    except Exception:
        logger.exception("Persistence write failed: %s", context)


class AnalyticsSink:
    """Write-behind front for the durable store.

    Every call queues the write on one background worker and returns at once.
    Failures are logged and dropped. The single worker keeps writes in the
    order they were issued.
    """

    def __init__(self, store: SQLiteStore) -> None:
        self.store = store
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="analytics-sink")
        self._lock = threading.Lock()
        self._closed = False

    def _submit(self, operation: Callable[[], None], context: str) -> None:
        with self._lock:
            if self._closed:
                logger.warning("Analytics sink closed, dropping write: %s", context)
                return
            try:
                self.executor.submit(_write_safe, operation, context)
            except RuntimeError:
                logger.exception("Could not queue persistence write: %s", context)

    def create_session(self, session_id: str, timestamp_ms: int) -> None:
        self._submit(lambda: self.store.create_session(session_id, timestamp_ms), "create session")

    def update_last_seen(self, session_id: str, timestamp_ms: int) -> None:
        self._submit(lambda: self.store.update_last_seen(session_id, timestamp_ms), "update last seen")

    def mark_expired(self, session_ids: Sequence[str], timestamp_ms: int) -> None:
        ids = list(session_ids)
        if not ids:
            return
        self._submit(lambda: self.store.mark_expired(ids, timestamp_ms), "mark sessions expired")

    def increment_reset(self, session_id: str) -> None:
        self._submit(lambda: self.store.increment_reset_count(session_id), "increment reset count")

    def insert_message(
        self,
        session_id: str,
        role: str,
        content: str,
        position: int,
        timestamp_ms: int,
    ) -> None:
        self._submit(
            lambda: self.store.insert_message(session_id, role, content, position, timestamp_ms),
            f"insert {role} message",
        )

    def mark_trimmed(self, session_id: str, positions: Sequence[int]) -> None:
        removed = list(positions)
        if not removed:
            return
        self._submit(lambda: self.store.mark_trimmed(session_id, removed), "mark messages trimmed")

    def insert_turn_log(self, turn: dict[str, Any]) -> None:
        payload = dict(turn)
        self._submit(lambda: self.store.insert_turn_log(payload), "insert turn log")

    def insert_retrieval_log(
        self,
        session_id: str,
        turn_id: str | None,
        query: str,
        chunks_retrieved: int,
        latency_ms: int,
        classification: str | None,
        timestamp_ms: int,
    ) -> None:
        self._submit(
            lambda: self.store.insert_retrieval_log(
                session_id,
                turn_id,
                query,
                chunks_retrieved,
                latency_ms,
                classification,
                timestamp_ms,
            ),
            "insert retrieval log",
        )

    def flush(self, timeout: float | None = 10.0) -> None:
        """Block until every write queued so far has run."""
        with self._lock:
            if self._closed:
                return
            marker: Future[None] = self.executor.submit(lambda: None)
        marker.result(timeout=timeout)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.executor.shutdown(wait=True)
