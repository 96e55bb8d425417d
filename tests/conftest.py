"""Shared fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from mdserve.index.storage import SQLiteIndexStore


def write_document(path: Path, content: str, mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    """Document tree with two notes."""
    root = tmp_path / "docs"
    write_document(root / "notes" / "a.md", "# Alpha\nhello beta", mtime=1_700_000_000)
    write_document(root / "notes" / "b.md", "# Beta only", mtime=1_700_000_000)
    return root


@pytest.fixture
def store(tmp_path: Path):
    """Index store backed by a temporary file."""
    index_store = SQLiteIndexStore(tmp_path / "test.index")
    yield index_store
    index_store.close()
