"""Quality gate applied to every generated answer."""
from __future__ import annotations

import logging
import re

from .config import ValidationSettings
from .models import ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_TEXT = "Извините, не удалось сформировать ответ. Попробуйте переформулировать вопрос."
TOO_SHORT_TEXT = "Ответ слишком короткий. Пожалуйста, уточните ваш вопрос."
INSUFFICIENT_INFO_TEXT = (
    "К сожалению, в базе знаний недостаточно информации для ответа на ваш вопрос. "
    "Попробуйте задать более конкретный вопрос или обратитесь к администратору."
)
TRUNCATION_MARKER = "\n\n[Ответ сокращен для удобства чтения]"

HALLUCINATION_PATTERN = re.compile(
    r"(я не знаю|не могу сказать|информация отсутствует|данных нет"
    r"|i don[’']t know|i do not know|cannot say|can[’']t say|no information available)",
    re.IGNORECASE,
)
_CONTROL_TOKENS = re.compile(r"\[INST\]|\[/INST\]|<\|.*?\|>|</?s>")
_HORIZONTAL_SPACE = re.compile(r"[ \t]+")
_LINE_EDGES = re.compile(r"[ \t]*\n[ \t]*")
_EXTRA_NEWLINES = re.compile(r"\n{3,}")
_BULLET = re.compile(r"^[-*][ \t]+", re.MULTILINE)
_NUMBERED = re.compile(r"^(\d+)[.):][ \t]+", re.MULTILINE)


class ResponseValidator:
    """Classifies a raw answer and returns the text that should be shown."""

    def __init__(self, settings: ValidationSettings | None = None) -> None:
        self.settings = settings or ValidationSettings()

    def validate(self, response: str | None, original_query: str | None = None) -> ValidationResult:
        if response is None or not response.strip():
            logger.warning("Empty response received")
            return ValidationResult(False, EMPTY_RESPONSE_TEXT, ValidationIssue.EMPTY_RESPONSE)

        if len(response) < self.settings.min_length:
            logger.warning("Response too short: %d chars", len(response))
            return ValidationResult(False, TOO_SHORT_TEXT, ValidationIssue.TOO_SHORT)

        if len(response) > self.settings.max_length:
            logger.warning("Response too long: %d chars, truncating", len(response))
            return ValidationResult(True, self.truncate(response), ValidationIssue.TRUNCATED)

        if self.contains_hallucination(response):
            logger.warning("Potential hallucination detected in response to %r", original_query)
            return ValidationResult(False, INSUFFICIENT_INFO_TEXT, ValidationIssue.HALLUCINATION)

        processed = self.post_process(response)
        if not processed:
            logger.warning("Response contained only control tokens")
            return ValidationResult(False, EMPTY_RESPONSE_TEXT, ValidationIssue.EMPTY_RESPONSE)

        logger.info("Response validated successfully, length: %d", len(processed))
        return ValidationResult(True, processed, ValidationIssue.NONE)

    @staticmethod
    def contains_hallucination(response: str) -> bool:
        return HALLUCINATION_PATTERN.search(response) is not None

    def truncate(self, response: str) -> str:
        """Cut to ``max_length`` including the marker, preferring to end on a sentence."""

        body = response[: self.settings.max_length - len(TRUNCATION_MARKER)]
        last_period = body.rfind(".")
        if last_period > len(body) - self.settings.truncation_window:
            body = body[: last_period + 1]
        return body + TRUNCATION_MARKER

    @staticmethod
    def post_process(response: str) -> str:
        processed = _CONTROL_TOKENS.sub("", response.strip())
        processed = _HORIZONTAL_SPACE.sub(" ", processed)
        processed = _LINE_EDGES.sub("\n", processed)
        processed = _EXTRA_NEWLINES.sub("\n\n", processed)
        processed = _BULLET.sub("• ", processed)
        processed = _NUMBERED.sub(r"\1. ", processed)
        return processed.strip()
