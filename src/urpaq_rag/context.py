"""Assembly of the retrieval context and the generation prompt."""
from __future__ import annotations

import logging
from collections.abc import Sequence

from langchain_core.prompts import PromptTemplate

from .config import ContextSettings
from .models import ProcessedQuery, ScoredDocument

logger = logging.getLogger(__name__)

NOT_FOUND_CONTEXT = "Информация не найдена в базе знаний."
CONTEXT_HEADER = "=== НАЙДЕННАЯ ИНФОРМАЦИЯ ===\n\n"
CONTEXT_SEPARATOR = "\n---\n"
CONTEXT_FOOTER = "\n=== КОНЕЦ ИНФОРМАЦИИ ===\n"

ANSWER_PROMPT = PromptTemplate.from_template(
    """Ты - AI помощник Дворца школьников "Digital Urpaq".

ТВОЯ ЗАДАЧА:
- Ответить на вопрос пользователя, используя ТОЛЬКО предоставленную информацию
- Быть точным, конкретным и полезным
- Если информации недостаточно, честно сказать об этом
- Отвечать на том же языке, на котором задан вопрос

{category_hint}

{context}

ВОПРОС ПОЛЬЗОВАТЕЛЯ:
{question}

ИНСТРУКЦИИ:
1. Внимательно изучи найденную информацию
2. Найди релевантные части, которые отвечают на вопрос
3. Сформулируй четкий и полный ответ
4. Если нужно, структурируй ответ списком или таблицей
5. Не придумывай информацию, которой нет в документах

ОТВЕТ:
"""
)


class ContextBuilder:
    def __init__(self, settings: ContextSettings | None = None) -> None:
        self.settings = settings or ContextSettings()

    def build_context(self, documents: Sequence[ScoredDocument], processed_query: ProcessedQuery | None = None) -> str:
        """Render ranked documents into one bounded context block.

        Documents are added in rank order until the next one would push the
        rendered total past ``max_context_length``. The first document is
        always included, however long.
        """

        if not documents:
            return NOT_FOUND_CONTEXT

        parts = [CONTEXT_HEADER]
        total_length = 0
        included = 0
        for scored in documents:
            rendered = self.format_document(scored, included + 1)
            if total_length + len(rendered) > self.settings.max_context_length and included > 0:
                logger.info("Context limit reached, using %d documents", included)
                break
            parts.append(rendered)
            parts.append(CONTEXT_SEPARATOR)
            total_length += len(rendered)
            included += 1
        parts.append(CONTEXT_FOOTER)

        logger.info("Built context with %d documents, total length: %d", included, total_length)
        return "".join(parts)

    @staticmethod
    def format_document(scored: ScoredDocument, position: int) -> str:
        return f"Документ {position}: {scored.name}\nРелевантность: {scored.score:.2f}\n\n{scored.text}"

    def build_prompt(self, context: str, user_query: str, processed_query: ProcessedQuery) -> str:
        return ANSWER_PROMPT.format(
            category_hint=processed_query.category.hint,
            context=context,
            question=user_query,
        )
