"""Boolean wildcard search over the index."""

from __future__ import annotations

import logging
from typing import List

from mdserve.index.storage import SQLiteIndexStore
from mdserve.utils.text import split_phrase

LOGGER = logging.getLogger(__name__)

# Every term is wrapped so it matches anywhere inside an indexed word.
SEARCH_SYNTAX = "*{}*"


class QueryEngine:
    """Turns a search phrase into a conjunctive wildcard query.

    ``"hello world"`` is searched as ``*hello*`` AND ``*world*``: a document
    is returned only when both terms occur somewhere in it.
    """

    def __init__(self, store: SQLiteIndexStore) -> None:
        self.store = store

    def build_patterns(self, phrase: str) -> List[str]:
        return [SEARCH_SYNTAX.format(term.lower()) for term in split_phrase(phrase)]

    def query(self, phrase: str) -> List[str]:
        """Return matching document ids in the store's order.

        A phrase without terms matches nothing.
        """
        patterns = self.build_patterns(phrase)
        if not patterns:
            return []
        LOGGER.debug("Searching for %s", " AND ".join(patterns))
        return self.store.wildcard_query(patterns)
