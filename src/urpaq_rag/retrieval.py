"""Hybrid retrieval: weighted fuzzy and category searches merged by document id."""
from __future__ import annotations

import asyncio
import logging
import re

from .config import RetrievalSettings
from .index import DocumentIndex, SearchCriteria, SearchHit
from .models import ProcessedQuery, QueryCategory, ScoredDocument

logger = logging.getLogger(__name__)

_SPECIAL_CHARS = re.compile(r'["*\[\]{}()?]')
_WHITESPACE = re.compile(r"\s+")


def sanitize_search_text(text: str | None) -> str:
    if not text:
        return ""
    cleaned = _SPECIAL_CHARS.sub(" ", text)
    return _WHITESPACE.sub(" ", cleaned).strip()


class HybridRetriever:
    """Combines a fuzzy text search and a category search with weighted scores."""

    def __init__(self, index: DocumentIndex, settings: RetrievalSettings | None = None) -> None:
        self.index = index
        self.settings = settings or RetrievalSettings()

    async def search(self, processed_query: ProcessedQuery, top_k: int | None = None) -> list[ScoredDocument]:
        top_k = self.settings.top_k if top_k is None else top_k
        fuzzy, by_category = await asyncio.gather(
            self._fuzzy_search(processed_query.search_query),
            self._category_search(processed_query.category),
        )

        merged: dict[str, ScoredDocument] = {}
        for scored in [*fuzzy, *by_category]:
            existing = merged.get(scored.document.id)
            if existing is None:
                merged[scored.document.id] = scored
            else:
                combined = existing.score + scored.score * self.settings.duplicate_factor
                merged[scored.document.id] = ScoredDocument(document=existing.document, score=combined)

        ranked = sorted(merged.values(), key=lambda item: item.score, reverse=True)[:top_k]
        logger.info(
            "Hybrid search returned %d documents (fuzzy=%d, category=%d)", len(ranked), len(fuzzy), len(by_category)
        )
        return ranked

    async def _fuzzy_search(self, search_query: str) -> list[ScoredDocument]:
        text = sanitize_search_text(search_query)
        if not text:
            return []
        return await self._weighted_search(SearchCriteria(text=text), self.settings.fuzzy_weight, "fuzzy")

    async def _category_search(self, category: QueryCategory) -> list[ScoredDocument]:
        if category is QueryCategory.GENERAL:
            return []
        return await self._weighted_search(SearchCriteria(text=category.label), self.settings.category_weight, "category")

    async def _weighted_search(self, criteria: SearchCriteria, weight: float, label: str) -> list[ScoredDocument]:
        try:
            hits = await self.index.search(criteria)
        except Exception:  # noqa: BLE001
            logger.exception("%s search failed for %r", label, criteria.text)
            return []
        return [self._score(hit, weight) for hit in hits]

    def _score(self, hit: SearchHit, weight: float) -> ScoredDocument:
        length_bonus = min(len(hit.document.text) / self.settings.length_bonus_chars, 1.0)
        score = hit.score * weight + length_bonus * self.settings.length_bonus_weight
        return ScoredDocument(document=hit.document, score=score)
