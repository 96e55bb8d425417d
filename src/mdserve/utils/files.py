"""Utility helpers for working with the served document tree."""

from __future__ import annotations

import os
import posixpath
import re
from pathlib import Path
from typing import Iterator

from mdserve.errors import InvalidRequest
from mdserve.models import DocumentInfo

_SEPARATORS = re.compile(r"[/\\]")


def _raise(exc: OSError) -> None:
    raise exc


def iter_documents(root: Path, suffix: str) -> Iterator[DocumentInfo]:
    """Yield every file under ``root`` whose name ends with ``suffix``.

    Directories are visited in sorted order. Any error while listing a
    directory or statting a file is raised to the caller instead of being
    skipped.
    """
    root = Path(root)
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        dirnames.sort()
        for filename in sorted(filenames):
            if not filename.endswith(suffix):
                continue
            full_path = Path(dirpath) / filename
            stat = full_path.stat()
            yield DocumentInfo(
                path=full_path.relative_to(root).as_posix(),
                mtime=stat.st_mtime,
                size=stat.st_size,
            )


def normalize_url_path(url_path: str) -> str:
    """Clean a request path the way a URL router sees it (always rooted)."""
    cleaned = posixpath.normpath("/" + url_path.lstrip("/"))
    # normpath keeps a leading double slash
    return "/" + cleaned.lstrip("/")


def contains_dot_dot(url_path: str) -> bool:
    """Whether any segment, split on either separator style, is ``..``."""
    if ".." not in url_path:
        return False
    return any(segment == ".." for segment in _SEPARATORS.split(url_path))


def format_name(doc_id: str, suffix: str) -> str:
    """Human readable name for a document: its path without the suffix."""
    name = doc_id.lstrip("/")
    if name.endswith(suffix):
        name = name[: -len(suffix)]
    return name


def resolve_document(root: Path, url_path: str) -> Path:
    """Map a cleaned URL path onto the served tree."""
    return Path(root).joinpath(*[part for part in url_path.split("/") if part])


def clean_request_path(url_path: str) -> str:
    """Normalize a request path, rejecting any that climbs out of the root.

    Raises :class:`InvalidRequest` for paths with a ``..`` segment left after
    normalization, whichever separator style they use.
    """
    cleaned = normalize_url_path(url_path)
    if contains_dot_dot(cleaned):
        raise InvalidRequest(f"invalid URL path: {url_path!r}")
    return cleaned
