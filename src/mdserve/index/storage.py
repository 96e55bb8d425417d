"""SQLite-backed inverted index."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Sequence

from mdserve.errors import IndexCommitError, QueryError
from mdserve.models import IndexRecord
from mdserve.utils.text import tokenize_fields, wildcard_to_like

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexBatch:
    """Upserts and deletions applied to the store as one unit."""

    upserts: Dict[str, IndexRecord] = field(default_factory=dict)
    deletions: set[str] = field(default_factory=set)

    def index(self, doc_id: str, record: IndexRecord) -> None:
        self.deletions.discard(doc_id)
        self.upserts[doc_id] = record

    def delete(self, doc_id: str) -> None:
        self.upserts.pop(doc_id, None)
        self.deletions.add(doc_id)

    def __len__(self) -> int:
        return len(self.upserts) + len(self.deletions)


class SQLiteIndexStore:
    """Persistent inverted index keyed by document path.

    A single writer applies batches inside one transaction, serialized by a
    lock. Queries run on their own short-lived connections, so with the WAL
    journal they only ever see fully committed batches.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._write_lock = threading.Lock()
        self._conn = self._connect()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        with self._write_lock:
            self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    path TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    content TEXT NOT NULL,
                    indexed_at TEXT DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS postings (
                    term TEXT NOT NULL,
                    path TEXT NOT NULL,
                    PRIMARY KEY (term, path),
                    FOREIGN KEY(path) REFERENCES documents(path) ON DELETE CASCADE
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_postings_path ON postings(path)")

    def new_batch(self) -> IndexBatch:
        return IndexBatch()

    def apply(self, batch: IndexBatch) -> None:
        """Commit every change in ``batch`` atomically."""
        if not len(batch):
            return
        try:
            with self.transaction() as conn:
                for doc_id in sorted(batch.deletions):
                    self._remove(conn, doc_id)
                for doc_id, record in batch.upserts.items():
                    self._remove(conn, doc_id)
                    conn.execute(
                        "INSERT INTO documents(path, name, content) VALUES (?, ?, ?)",
                        (doc_id, record.name, record.content),
                    )
                    conn.executemany(
                        "INSERT INTO postings(term, path) VALUES (?, ?)",
                        [(term, doc_id) for term in sorted(tokenize_fields([record.name, record.content]))],
                    )
        except sqlite3.Error as exc:
            LOGGER.error("Index commit failed: %s", exc)
            raise IndexCommitError(str(exc)) from exc

    @staticmethod
    def _remove(conn: sqlite3.Connection, doc_id: str) -> None:
        conn.execute("DELETE FROM postings WHERE path = ?", (doc_id,))
        conn.execute("DELETE FROM documents WHERE path = ?", (doc_id,))

    def wildcard_query(self, patterns: Sequence[str]) -> List[str]:
        """Ids of documents where every wildcard pattern matches some term.

        ``*`` matches any run of characters and ``?`` a single one. Results
        are ordered by document path. No patterns means no results.
        """
        if not patterns:
            return []
        clauses = " AND ".join(
            "EXISTS (SELECT 1 FROM postings p WHERE p.path = d.path AND p.term LIKE ? ESCAPE '\\')"
            for _ in patterns
        )
        sql = f"SELECT d.path AS path FROM documents d WHERE {clauses} ORDER BY d.path"
        params = [wildcard_to_like(pattern.lower()) for pattern in patterns]
        try:
            with self._reader() as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            LOGGER.error("Index query failed: %s", exc)
            raise QueryError(str(exc)) from exc
        return [row["path"] for row in rows]

    def get(self, doc_id: str) -> IndexRecord | None:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT name, content FROM documents WHERE path = ?", (doc_id,)
            ).fetchone()
        if row is None:
            return None
        return IndexRecord(name=row["name"], content=row["content"])

    def document_ids(self) -> List[str]:
        try:
            with self._reader() as conn:
                rows = conn.execute("SELECT path FROM documents ORDER BY path").fetchall()
        except sqlite3.Error as exc:
            LOGGER.error("Listing indexed documents failed: %s", exc)
            raise QueryError(str(exc)) from exc
        return [row["path"] for row in rows]

    def count(self) -> int:
        with self._reader() as conn:
            return conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
