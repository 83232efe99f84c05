from __future__ import annotations

from contextlib import contextmanager
import json
import logging
from pathlib import Path
import sqlite3
import time
from typing import Any, Iterator, Sequence

from knowledge.models import DOC_TYPE_GENERAL, DocumentChunk

logger = logging.getLogger(__name__)

_COLUMN_MIGRATIONS = (
    (
        "knowledge_chunks",
        "document_type",
        "ALTER TABLE knowledge_chunks ADD COLUMN document_type TEXT DEFAULT 'general'",
    ),
    (
        "retrieval_logs",
        "classification",
        "ALTER TABLE retrieval_logs ADD COLUMN classification TEXT",
    ),
)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SQLiteStore:
    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.execute("PRAGMA busy_timeout=5000;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    created_at INTEGER NOT NULL,
                    first_seen_at INTEGER NOT NULL,
                    last_seen_at INTEGER NOT NULL,
                    expired_at INTEGER,
                    reset_count INTEGER DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_created ON sessions(created_at);
                CREATE INDEX IF NOT EXISTS idx_sessions_expired ON sessions(expired_at);

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    position INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    was_trimmed INTEGER DEFAULT 0,
                    FOREIGN KEY (session_id) REFERENCES sessions(session_id)
                );

                CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id, position);
                CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at);

                CREATE TABLE IF NOT EXISTS turn_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    turn_id TEXT NOT NULL UNIQUE,
                    user_content TEXT NOT NULL,
                    user_at INTEGER NOT NULL,
                    user_word_count INTEGER NOT NULL,
                    assistant_content TEXT NOT NULL,
                    assistant_at INTEGER NOT NULL,
                    assistant_word_count INTEGER NOT NULL,
                    latency_ms INTEGER NOT NULL,
                    context_word_count INTEGER NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions(session_id)
                );

                CREATE INDEX IF NOT EXISTS idx_turns_session ON turn_logs(session_id);
                CREATE INDEX IF NOT EXISTS idx_turns_created ON turn_logs(user_at);

                CREATE TABLE IF NOT EXISTS knowledge_chunks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_file TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    heading TEXT,
                    content TEXT NOT NULL,
                    embedding TEXT NOT NULL,
                    char_count INTEGER NOT NULL,
                    word_count INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    UNIQUE(source_file, chunk_index)
                );

                CREATE INDEX IF NOT EXISTS idx_chunks_source ON knowledge_chunks(source_file);

                CREATE TABLE IF NOT EXISTS retrieval_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL,
                    turn_id TEXT,
                    query TEXT NOT NULL,
                    chunks_retrieved INTEGER NOT NULL,
                    retrieval_latency_ms INTEGER NOT NULL,
                    created_at INTEGER NOT NULL,
                    FOREIGN KEY (session_id) REFERENCES sessions(session_id)
                );

                CREATE INDEX IF NOT EXISTS idx_retrieval_session ON retrieval_logs(session_id);
                CREATE INDEX IF NOT EXISTS idx_retrieval_turn ON retrieval_logs(turn_id);
                """
            )
            self._migrate_columns(conn)
            conn.commit()

    def _migrate_columns(self, conn: sqlite3.Connection) -> None:
        for table, column, statement in _COLUMN_MIGRATIONS:
            existing = {str(row["name"]) for row in conn.execute(f"PRAGMA table_info({table})")}
            if column in existing:
                continue
            logger.info("Adding column %s.%s", table, column)
            conn.execute(statement)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_chunks_document_type ON knowledge_chunks(document_type)"
        )

    # Sessions

    def create_session(self, session_id: str, timestamp_ms: int) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO sessions(session_id, created_at, first_seen_at, last_seen_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    last_seen_at = excluded.last_seen_at,
                    expired_at = NULL
                """,
                (session_id, timestamp_ms, timestamp_ms, timestamp_ms),
            )
            conn.commit()

    def update_last_seen(self, session_id: str, timestamp_ms: int) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE sessions SET last_seen_at = ? WHERE session_id = ?",
                (timestamp_ms, session_id),
            )
            conn.commit()

    def mark_expired(self, session_ids: Sequence[str], timestamp_ms: int) -> None:
        if not session_ids:
            return
        with self.connect() as conn:
            conn.executemany(
                "UPDATE sessions SET expired_at = ? WHERE session_id = ?",
                [(timestamp_ms, session_id) for session_id in session_ids],
            )
            conn.commit()

    def increment_reset_count(self, session_id: str) -> None:
        with self.connect() as conn:
            conn.execute(
                "UPDATE sessions SET reset_count = reset_count + 1 WHERE session_id = ?",
                (session_id,),
            )
            conn.commit()

    def fetch_session(self, session_id: str) -> dict[str, Any] | None:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT session_id, created_at, first_seen_at, last_seen_at, expired_at, reset_count "
                "FROM sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        return dict(row) if row else None

    # Messages

    def insert_message(
        self,
        session_id: str,
        role: str,
        content: str,
        position: int,
        timestamp_ms: int,
    ) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO messages(session_id, role, content, position, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (session_id, role, content, position, timestamp_ms),
            )
            conn.commit()

    def mark_trimmed(self, session_id: str, positions: Sequence[int]) -> None:
        if not positions:
            return
        with self.connect() as conn:
            conn.executemany(
                "UPDATE messages SET was_trimmed = 1 WHERE session_id = ? AND position = ?",
                [(session_id, int(position)) for position in positions],
            )
            conn.commit()

    def fetch_messages(self, session_id: str) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT role, content, position, created_at, was_trimmed
                FROM messages
                WHERE session_id = ?
                ORDER BY id
                """,
                (session_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    # Analytics

    def insert_turn_log(self, turn: dict[str, Any]) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO turn_logs(
                    session_id, turn_id, user_content, user_at, user_word_count,
                    assistant_content, assistant_at, assistant_word_count,
                    latency_ms, context_word_count
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    turn["session_id"],
                    turn["turn_id"],
                    turn["user_content"],
                    turn["user_at"],
                    turn["user_word_count"],
                    turn["assistant_content"],
                    turn["assistant_at"],
                    turn["assistant_word_count"],
                    turn["latency_ms"],
                    turn["context_word_count"],
                ),
            )
            conn.commit()

    def fetch_turns(self, session_id: str) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT turn_id, user_content, user_at, user_word_count,
                       assistant_content, assistant_at, assistant_word_count,
                       latency_ms, context_word_count
                FROM turn_logs
                WHERE session_id = ?
                ORDER BY user_at, id
                """,
                (session_id,),
            ).fetchall()
        return [dict(row) for row in rows]

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
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO retrieval_logs(
                    session_id, turn_id, query, chunks_retrieved,
                    retrieval_latency_ms, classification, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (session_id, turn_id, query, chunks_retrieved, latency_ms, classification, timestamp_ms),
            )
            conn.commit()

    def fetch_retrieval_logs(self, session_id: str) -> list[dict[str, Any]]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT turn_id, query, chunks_retrieved, retrieval_latency_ms, classification, created_at
                FROM retrieval_logs
                WHERE session_id = ?
                ORDER BY id
                """,
                (session_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    # Knowledge chunks

    def insert_chunks_batch(self, chunks: Sequence[DocumentChunk]) -> None:
        if not chunks:
            return
        with self.connect() as conn:
            self._insert_chunks(conn, chunks)
            conn.commit()

    def clear_chunks(self) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM knowledge_chunks")
            conn.commit()

    def replace_chunks(self, chunks: Sequence[DocumentChunk]) -> None:
        """Swap the whole chunk set in one transaction."""
        with self.connect() as conn:
            try:
                conn.execute("DELETE FROM knowledge_chunks")
                self._insert_chunks(conn, chunks)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

    def load_all_chunks(self) -> list[DocumentChunk]:
        with self.connect() as conn:
            rows = conn.execute(
                """
                SELECT source_file, chunk_index, heading, content, embedding,
                       char_count, word_count, document_type
                FROM knowledge_chunks
                ORDER BY source_file, chunk_index
                """
            ).fetchall()

        return [
            DocumentChunk(
                source_file=str(row["source_file"]),
                chunk_index=int(row["chunk_index"]),
                heading=row["heading"],
                content=str(row["content"]),
                char_count=int(row["char_count"]),
                word_count=int(row["word_count"]),
                document_type=str(row["document_type"] or DOC_TYPE_GENERAL),
                embedding=tuple(float(value) for value in json.loads(row["embedding"])),
            )
            for row in rows
        ]

    def count_chunks(self) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM knowledge_chunks").fetchone()
        if not row:
            return 0
        return int(row["count"])

    def _insert_chunks(self, conn: sqlite3.Connection, chunks: Sequence[DocumentChunk]) -> None:
        created_at = _now_ms()
        conn.executemany(
            """
            INSERT INTO knowledge_chunks(
                source_file, chunk_index, heading, content, embedding,
                char_count, word_count, document_type, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    chunk.source_file,
                    chunk.chunk_index,
                    chunk.heading,
                    chunk.content,
                    json.dumps(list(chunk.embedding)),
                    chunk.char_count,
                    chunk.word_count,
                    chunk.document_type,
                    created_at,
                )
                for chunk in chunks
            ],
        )
