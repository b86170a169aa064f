"""Rule-based query classification and keyword extraction."""
from __future__ import annotations

import logging

from .models import ProcessedQuery, QueryCategory

logger = logging.getLogger(__name__)

KEYWORDS_MARKER = "[ключевые слова]:"


class QueryClassifier:
    """Maps raw query text to a category and a keyword hint."""

    def classify(self, query: str | None) -> ProcessedQuery:
        if query is None or not query.strip():
            return ProcessedQuery(
                original_query=query or "", normalized_metadata="", category=QueryCategory.GENERAL, keywords=""
            )

        try:
            lowered = query.lower()
            category = self.determine_category(lowered)
            keywords = self.extract_keywords(lowered)
        except Exception:  # noqa: BLE001
            logger.exception("Error processing query %r, falling back to GENERAL", query)
            return ProcessedQuery(
                original_query=query, normalized_metadata="", category=QueryCategory.GENERAL, keywords=query
            )

        logger.info("Processed query - category: %s, keywords: %s", category.name, keywords)
        return ProcessedQuery(original_query=query, normalized_metadata=lowered, category=category, keywords=keywords)

    @staticmethod
    def determine_category(lowered: str) -> QueryCategory:
        for category in QueryCategory:
            if any(trigger in lowered for trigger in category.triggers):
                return category
        return QueryCategory.GENERAL

    @staticmethod
    def extract_keywords(lowered: str) -> str:
        if KEYWORDS_MARKER in lowered:
            tail = lowered.split(KEYWORDS_MARKER, 1)[1]
            return tail.split("[", 1)[0].strip()
        return lowered
