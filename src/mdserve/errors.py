"""Exceptions raised by the serving and indexing core."""

from __future__ import annotations


class MdServeError(Exception):
    """Base class for mdserve errors."""


class DocumentNotFound(MdServeError, FileNotFoundError):
    """The requested document does not exist on disk."""


class InvalidRequest(MdServeError, ValueError):
    """A request path or query was rejected before touching the filesystem."""


class CompilationError(MdServeError):
    """Markdown could not be rendered into a page."""


class IndexWalkError(MdServeError):
    """The document tree could not be walked or a document could not be read."""


class IndexCommitError(MdServeError):
    """A batch of index updates could not be committed."""


class QueryError(MdServeError):
    """The index failed to execute a search."""
