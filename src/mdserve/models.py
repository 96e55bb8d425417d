"""Core mdserve data models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class DocumentInfo:
    """Snapshot of a document on disk, identified by its relative path."""

    path: str
    mtime: float
    size: int


@dataclass(frozen=True, slots=True)
class PageOptions:
    """Rendering options for compiled pages."""

    theme: str = "dark"


@dataclass(frozen=True, slots=True)
class IndexRecord:
    """Searchable fields stored for a document."""

    name: str
    content: str


@dataclass(frozen=True, slots=True)
class ListingEntry:
    """Row of the directory listing page."""

    name: str
    modified: str
    size: str
    path: str
    doc_id: str


@dataclass(slots=True)
class BuildStats:
    indexed: int = 0
    unchanged: int = 0
    oversized: int = 0
    removed: int = 0
    elapsed: float = 0.0

    @property
    def per_document(self) -> float:
        """Average seconds spent per indexed document."""
        if not self.indexed:
            return 0.0
        return self.elapsed / self.indexed
