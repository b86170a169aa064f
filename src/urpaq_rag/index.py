"""Document index contract and the bundled in-memory BM25 implementation."""
from __future__ import annotations

import asyncio
import logging
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from rank_bm25 import BM25Plus

from .models import Document

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("name", "text")
STEM_LENGTH = 5
_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


@dataclass(slots=True, frozen=True)
class SearchCriteria:
    """OR-match of ``text`` against each of ``fields``."""

    text: str
    fields: tuple[str, ...] = SEARCH_FIELDS


@dataclass(slots=True, frozen=True)
class SearchHit:
    document: Document
    score: float


class DocumentIndex(Protocol):
    async def search(self, criteria: SearchCriteria) -> list[SearchHit]: ...

    async def add_many(self, documents: Iterable[Document]) -> int: ...

    async def delete(self, document_id: str) -> bool: ...

    async def clear(self) -> None: ...

    async def count(self) -> int: ...


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens cut to a fixed prefix, so word forms match loosely."""

    tokens = _TOKEN_PATTERN.findall(text.lower().replace("ё", "е"))
    return [token[:STEM_LENGTH] for token in tokens]


class _FieldIndex:
    def __init__(self, token_lists: list[list[str]]) -> None:
        self.token_sets = [set(tokens) for tokens in token_lists]
        has_tokens = any(token_lists)
        self.bm25 = BM25Plus(token_lists) if has_tokens else None

    def scores(self, query_tokens: list[str]) -> list[float] | None:
        if self.bm25 is None:
            return None
        return [float(score) for score in self.bm25.get_scores(query_tokens)]


class InMemoryDocumentIndex:
    """Thread-safe document store scored with BM25+ per field.

    A document matches when any query token occurs in one of the requested
    fields; its relevance is the sum of the matching fields' BM25 scores.
    Field indexes are rebuilt lazily after writes.
    """

    def __init__(self, documents: Iterable[Document] = ()) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()
        self._snapshot: tuple[list[Document], dict[str, _FieldIndex]] | None = None
        for document in documents:
            self._documents[document.id] = document

    async def search(self, criteria: SearchCriteria) -> list[SearchHit]:
        if not criteria.text or not criteria.text.strip():
            return []
        return await asyncio.to_thread(self.search_sync, criteria)

    def search_sync(self, criteria: SearchCriteria) -> list[SearchHit]:
        query_tokens = tokenize(criteria.text)
        if not query_tokens:
            return []
        documents, fields = self._current_snapshot()
        if not documents:
            return []

        totals = [0.0] * len(documents)
        matched = [False] * len(documents)
        wanted = set(query_tokens)
        for field_name in criteria.fields:
            field_index = fields.get(field_name)
            if field_index is None:
                continue
            field_scores = field_index.scores(query_tokens)
            if field_scores is None:
                continue
            for position, token_set in enumerate(field_index.token_sets):
                if wanted & token_set:
                    matched[position] = True
                    totals[position] += field_scores[position]

        hits = [SearchHit(document=documents[i], score=totals[i]) for i in range(len(documents)) if matched[i]]
        hits.sort(key=lambda hit: hit.score, reverse=True)
        logger.debug("Index search for %r matched %d documents", criteria.text, len(hits))
        return hits

    async def add(self, document: Document) -> Document:
        await self.add_many([document])
        return document

    async def add_many(self, documents: Iterable[Document]) -> int:
        added = 0
        with self._lock:
            for document in documents:
                self._documents[document.id] = document
                added += 1
            self._snapshot = None
        return added

    async def delete(self, document_id: str) -> bool:
        with self._lock:
            removed = self._documents.pop(document_id, None) is not None
            if removed:
                self._snapshot = None
        return removed

    async def clear(self) -> None:
        with self._lock:
            self._documents.clear()
            self._snapshot = None

    async def count(self) -> int:
        with self._lock:
            return len(self._documents)

    async def get(self, document_id: str) -> Document | None:
        with self._lock:
            return self._documents.get(document_id)

    def _current_snapshot(self) -> tuple[list[Document], dict[str, _FieldIndex]]:
        with self._lock:
            if self._snapshot is None:
                documents = list(self._documents.values())
                fields = {
                    "name": _FieldIndex([tokenize(doc.name) for doc in documents]),
                    "text": _FieldIndex([tokenize(doc.text) for doc in documents]),
                }
                self._snapshot = (documents, fields)
            return self._snapshot