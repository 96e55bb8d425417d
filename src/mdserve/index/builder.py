"""Incremental index builder for the served document tree."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict

from mdserve.errors import IndexWalkError
from mdserve.index.storage import SQLiteIndexStore
from mdserve.models import BuildStats, IndexRecord
from mdserve.utils.files import iter_documents

LOGGER = logging.getLogger(__name__)


def _read_document(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="replace")


class IndexBuilder:
    """Walks the document tree and submits changed documents to the store.

    The builder keeps a memo of the modification time each document had when
    it was last read. A document is read and re-submitted only when its
    current modification time is strictly newer than the memo entry, so a
    build over an unchanged tree reads nothing.

    The memo is only touched by :meth:`build_index`, which must not run
    concurrently with itself.
    """

    def __init__(
        self,
        store: SQLiteIndexStore,
        root_dir: Path,
        *,
        suffix: str = ".md",
        max_file_size: int = 1 << 30,
    ) -> None:
        self.store = store
        self.root_dir = Path(root_dir)
        self.suffix = suffix
        self.max_file_size = max_file_size
        self._memo: Dict[str, float] = {}

    @property
    def memo(self) -> Dict[str, float]:
        """Copy of the path to last-indexed modification time mapping."""
        return dict(self._memo)

    def build_index(self) -> BuildStats:
        """Run one build cycle.

        Raises :class:`IndexWalkError` if the tree cannot be walked or a
        document cannot be read; nothing from that cycle is committed or
        memoized. Raises :class:`QueryError` if the ids already in the store
        cannot be listed, also before anything is memoized. Raises
        :class:`IndexCommitError` if the batch cannot be committed.
        """
        start = time.perf_counter()
        stats = BuildStats()
        batch = self.store.new_batch()
        staged: Dict[str, float] = {}
        seen: set[str] = set()

        try:
            for document in iter_documents(self.root_dir, self.suffix):
                last_indexed = self._memo.get(document.path)
                if last_indexed is not None and last_indexed >= document.mtime:
                    LOGGER.debug("Skipping %s: unchanged since last index", document.path)
                    stats.unchanged += 1
                    seen.add(document.path)
                    continue

                if document.size > self.max_file_size:
                    LOGGER.info(
                        "Skipping %s: too large to index (%d bytes)", document.path, document.size
                    )
                    stats.oversized += 1
                    continue

                content = _read_document(self.root_dir / document.path)
                batch.index(document.path, IndexRecord(name=document.path, content=content))
                staged[document.path] = document.mtime
                seen.add(document.path)
                stats.indexed += 1
        except OSError as exc:
            raise IndexWalkError(f"could not walk {self.root_dir}: {exc}") from exc

        stale = (set(self._memo) | set(self.store.document_ids())) - seen
        for doc_id in sorted(stale):
            LOGGER.info("Removing %s from index: no longer on disk", doc_id)
            batch.delete(doc_id)
            self._memo.pop(doc_id, None)
        stats.removed = len(stale)

        self._memo.update(staged)
        self.store.apply(batch)

        stats.elapsed = time.perf_counter() - start
        LOGGER.info(
            "Indexed %d documents in %.2fs (average %.2fms/doc)",
            stats.indexed,
            stats.elapsed,
            stats.per_document * 1000,
        )
        return stats
