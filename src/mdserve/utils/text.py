"""Text helpers for the search index."""

from __future__ import annotations

import re
from typing import Iterable, List, Set

_TOKEN = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> Set[str]:
    """Lowercased word tokens of ``text``, deduplicated."""
    return {token.lower() for token in _TOKEN.findall(text)}


def tokenize_fields(fields: Iterable[str]) -> Set[str]:
    """Union of the tokens of several fields."""
    terms: Set[str] = set()
    for field in fields:
        terms |= tokenize(field)
    return terms


def split_phrase(phrase: str) -> List[str]:
    """Split a search phrase into terms on whitespace.

    No quoting, escaping or stemming is applied.
    """
    return phrase.split()


def wildcard_to_like(pattern: str) -> str:
    """Translate a ``*``/``?`` wildcard into a SQL LIKE pattern using ``\\`` as escape."""
    out = []
    for char in pattern:
        if char == "*":
            out.append("%")
        elif char == "?":
            out.append("_")
        elif char in "%_\\":
            out.append("\\" + char)
        else:
            out.append(char)
    return "".join(out)
