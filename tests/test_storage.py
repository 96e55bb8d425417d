"""Tests for SQLiteIndexStore."""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from mdserve.errors import IndexCommitError, QueryError
from mdserve.index.storage import IndexBatch, SQLiteIndexStore
from mdserve.models import IndexRecord


def index_documents(store: SQLiteIndexStore, documents: dict[str, str]) -> None:
    batch = store.new_batch()
    for doc_id, content in documents.items():
        batch.index(doc_id, IndexRecord(name=doc_id, content=content))
    store.apply(batch)


class TestSQLiteIndexStore:
    """Test store initialization and schema."""

    def test_init_creates_database(self, tmp_path: Path) -> None:
        db_path = tmp_path / "new.index"
        assert not db_path.exists()

        store = SQLiteIndexStore(db_path)

        assert db_path.exists()
        assert store.db_path == db_path
        store.close()

    def test_schema_creation(self, store: SQLiteIndexStore) -> None:
        conn = store.connection
        tables = {
            row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"documents", "postings"} <= tables

    def test_wal_mode(self, store: SQLiteIndexStore) -> None:
        result = store.connection.execute("PRAGMA journal_mode").fetchone()
        assert result[0].lower() == "wal"

    def test_close(self, tmp_path: Path) -> None:
        store = SQLiteIndexStore(tmp_path / "close.index")
        conn = store.connection

        store.close()

        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")

    def test_persists_across_reopen(self, tmp_path: Path) -> None:
        db_path = tmp_path / "persist.index"
        store = SQLiteIndexStore(db_path)
        index_documents(store, {"a.md": "persistent words"})
        store.close()

        reopened = SQLiteIndexStore(db_path)
        try:
            assert reopened.wildcard_query(["*persist*"]) == ["a.md"]
        finally:
            reopened.close()


class TestIndexBatch:
    """Test IndexBatch bookkeeping."""

    def test_index_then_delete(self) -> None:
        batch = IndexBatch()
        batch.index("a.md", IndexRecord(name="a.md", content="x"))
        batch.delete("a.md")

        assert batch.upserts == {}
        assert batch.deletions == {"a.md"}
        assert len(batch) == 1

    def test_delete_then_index(self) -> None:
        batch = IndexBatch()
        batch.delete("a.md")
        batch.index("a.md", IndexRecord(name="a.md", content="x"))

        assert "a.md" in batch.upserts
        assert batch.deletions == set()


class TestApply:
    """Test batch commits."""

    def test_upsert_and_get(self, store: SQLiteIndexStore) -> None:
        index_documents(store, {"notes/a.md": "# Alpha\nhello beta"})

        assert store.get("notes/a.md") == IndexRecord(name="notes/a.md", content="# Alpha\nhello beta")
        assert store.count() == 1

    def test_upsert_replaces_terms(self, store: SQLiteIndexStore) -> None:
        index_documents(store, {"a.md": "old words"})
        index_documents(store, {"a.md": "fresh content"})

        assert store.wildcard_query(["*old*"]) == []
        assert store.wildcard_query(["*fresh*"]) == ["a.md"]
        assert store.count() == 1

    def test_delete(self, store: SQLiteIndexStore) -> None:
        index_documents(store, {"a.md": "alpha", "b.md": "alpha"})
        batch = store.new_batch()
        batch.delete("a.md")

        store.apply(batch)

        assert store.document_ids() == ["b.md"]
        assert store.get("a.md") is None
        assert store.wildcard_query(["*alpha*"]) == ["b.md"]

    def test_empty_batch_is_noop(self, store: SQLiteIndexStore) -> None:
        store.apply(store.new_batch())
        assert store.count() == 0

    def test_failed_commit_is_atomic(self, store: SQLiteIndexStore) -> None:
        """A batch that fails half-way leaves no partial state behind."""
        index_documents(store, {"keep.md": "kept"})
        batch = store.new_batch()
        batch.index("a.md", IndexRecord(name="a.md", content="first"))
        batch.index("b.md", IndexRecord(name="b.md", content="second"))

        original = store._remove
        calls = {"count": 0}

        def failing_remove(conn, doc_id):
            calls["count"] += 1
            if calls["count"] == 2:
                raise sqlite3.OperationalError("disk I/O error")
            return original(conn, doc_id)

        with patch.object(store, "_remove", side_effect=failing_remove):
            with pytest.raises(IndexCommitError):
                store.apply(batch)

        assert store.document_ids() == ["keep.md"]
        assert store.wildcard_query(["*first*"]) == []

    def test_concurrent_reader_sees_committed_state(self, store: SQLiteIndexStore) -> None:
        index_documents(store, {"a.md": "alpha"})
        results: list[list[str]] = []

        def reader() -> None:
            results.append(store.wildcard_query(["*alpha*"]))

        thread = threading.Thread(target=reader)
        thread.start()
        thread.join()

        assert results == [["a.md"]]


class TestWildcardQuery:
    """Test wildcard queries."""

    @pytest.fixture(autouse=True)
    def populated(self, store: SQLiteIndexStore) -> None:
        index_documents(
            store,
            {
                "notes/a.md": "# Alpha\nhello beta",
                "notes/b.md": "# Beta only",
                "guide.md": "Writing Markdown well",
            },
        )

    def test_substring_match(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query(["*mark*"]) == ["guide.md"]

    def test_case_insensitive(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query(["*MARKDOWN*"]) == ["guide.md"]

    def test_conjunction(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query(["*alpha*", "*beta*"]) == ["notes/a.md"]

    def test_ordered_by_path(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query(["*beta*"]) == ["notes/a.md", "notes/b.md"]

    def test_name_is_searchable(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query(["*guide*"]) == ["guide.md"]

    def test_question_mark_single_character(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query(["b?ta"]) == ["notes/a.md", "notes/b.md"]
        assert store.wildcard_query(["b?a"]) == []

    def test_percent_is_literal(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query(["%"]) == []

    def test_no_patterns(self, store: SQLiteIndexStore) -> None:
        assert store.wildcard_query([]) == []

    def test_query_failure_raises_query_error(self, store: SQLiteIndexStore) -> None:
        with patch.object(store, "_connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(QueryError):
                store.wildcard_query(["*alpha*"])


class TestDocumentIds:
    """Tests for listing stored ids."""

    def test_sorted(self, store: SQLiteIndexStore) -> None:
        batch = store.new_batch()
        batch.index("b.md", IndexRecord(name="b.md", content="x"))
        batch.index("a.md", IndexRecord(name="a.md", content="y"))
        store.apply(batch)

        assert store.document_ids() == ["a.md", "b.md"]

    def test_document_ids_failure_raises_query_error(self, store: SQLiteIndexStore) -> None:
        with patch.object(store, "_connect", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(QueryError):
                store.document_ids()
