"""Core domain models for the RAG engine."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class QueryCategory(Enum):
    """Closed set of query categories.

    Each member carries its display label (used by the category search), the
    classifier trigger substrings, and the prompt hint for the context
    assembler. Members are listed in classifier priority order.
    """

    SCHEDULE = (
        "расписание",
        ("расписание", "звонк"),
        "КАТЕГОРИЯ: Расписание\nОбрати особое внимание на время, дни недели и смены.",
    )
    ROOMS = (
        "кабинеты",
        ("кабинет", "лаборатор"),
        "КАТЕГОРИЯ: Кабинеты и лаборатории\nОпиши оборудование и возможности помещений.",
    )
    TEACHERS = (
        "учителя",
        ("учител", "педагог", "преподават"),
        "КАТЕГОРИЯ: Учителя и педагоги\nУкажи имена, квалификацию и достижения.",
    )
    DIRECTIONS = (
        "направления",
        ("направлен", "кружок", "секци"),
        "КАТЕГОРИЯ: Направления и кружки\nОпиши программы, возраст участников и условия.",
    )
    CONTACTS = (
        "контакты",
        ("контакт", "телефон", "адрес"),
        "КАТЕГОРИЯ: Контакты\nУкажи точные телефоны, адреса и время работы.",
    )
    GENERAL = (
        "общее",
        (),
        "КАТЕГОРИЯ: Общая информация\nДай полный и информативный ответ.",
    )

    def __init__(self, label: str, triggers: tuple[str, ...], hint: str) -> None:
        self.label = label
        self.triggers = triggers
        self.hint = hint


class ValidationIssue(str, Enum):
    NONE = "NONE"
    EMPTY_RESPONSE = "EMPTY_RESPONSE"
    TOO_SHORT = "TOO_SHORT"
    TOO_LONG = "TOO_LONG"
    TRUNCATED = "TRUNCATED"
    HALLUCINATION = "HALLUCINATION"
    IRRELEVANT = "IRRELEVANT"


@dataclass(slots=True, frozen=True)
class Document:
    id: str
    name: str
    text: str


@dataclass(slots=True, frozen=True)
class DocumentChunk:
    id: str
    document_id: str
    document_name: str
    text: str
    chunk_index: int
    overlap_length: int = 0

    def to_document(self) -> Document:
        return Document(id=self.id, name=f"{self.document_name} (часть {self.chunk_index + 1})", text=self.text)


@dataclass(slots=True, frozen=True)
class ScoredDocument:
    document: Document
    score: float

    @property
    def name(self) -> str:
        return self.document.name

    @property
    def text(self) -> str:
        return self.document.text


@dataclass(slots=True, frozen=True)
class ProcessedQuery:
    original_query: str
    normalized_metadata: str
    category: QueryCategory
    keywords: str

    @property
    def search_query(self) -> str:
        """Keywords when present, otherwise the raw query."""

        return self.keywords if self.keywords.strip() else self.original_query


@dataclass(slots=True, frozen=True, order=True)
class CacheEntry(Generic[T]):
    value: T = field(compare=False)
    expires_at: float = 0.0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(slots=True, frozen=True)
class CacheStats:
    search_cache_size: int
    query_cache_size: int
    search_cache_valid: int
    query_cache_valid: int

    def as_dict(self) -> dict[str, int]:
        return {
            "searchCacheSize": self.search_cache_size,
            "queryCacheSize": self.query_cache_size,
            "searchCacheValid": self.search_cache_valid,
            "queryCacheValid": self.query_cache_valid,
        }

    def __str__(self) -> str:
        return (
            f"Cache Stats: Search[{self.search_cache_valid}/{self.search_cache_size}] "
            f"Query[{self.query_cache_valid}/{self.query_cache_size}]"
        )


@dataclass(slots=True, frozen=True)
class ValidationResult:
    is_valid: bool
    processed_text: str
    issue: ValidationIssue


@dataclass(slots=True)
class RagResponse:
    answer: str
    processed_query: ProcessedQuery
    source_documents: list[ScoredDocument]
    is_valid: bool
    validation_issue: ValidationIssue

    @property
    def sources_summary(self) -> str:
        if not self.source_documents:
            return "Источники не найдены"
        return "\n".join(f"• {doc.name}" for doc in self.source_documents[:3])

    @property
    def source_count(self) -> int:
        return len(self.source_documents)


@dataclass(slots=True, frozen=True)
class RequestMetric:
    timestamp: datetime
    response_time_ms: float
    success: bool
    error_type: str | None = None


@dataclass(slots=True, frozen=True)
class MetricsSnapshot:
    total_requests: int
    successful_requests: int
    failed_requests: int
    total_retries: int
    success_rate: float
    avg_response_time_ms: float
    validation_issues: Mapping[ValidationIssue, int]
    error_types: Mapping[str, int]
    recent_requests: tuple[RequestMetric, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "successRate": self.success_rate,
            "avgResponseTimeMs": self.avg_response_time_ms,
            "totalRetries": self.total_retries,
            "validationIssues": {issue.value: count for issue, count in self.validation_issues.items()},
            "errorTypes": dict(self.error_types),
        }

    def __str__(self) -> str:
        issues = "\n".join(f"  {issue.value}: {count}" for issue, count in self.validation_issues.items()) or "  None"
        errors = "\n".join(f"  {name}: {count}" for name, count in self.error_types.items()) or "  None"
        return (
            "=== RAG Metrics ===\n"
            f"Total Requests: {self.total_requests}\n"
            f"Successful: {self.successful_requests} ({self.success_rate:.1f}%)\n"
            f"Failed: {self.failed_requests}\n"
            f"Retries: {self.total_retries}\n"
            f"Avg Response Time: {self.avg_response_time_ms:.0f}ms\n\n"
            f"Validation Issues:\n{issues}\n\n"
            f"Error Types:\n{errors}\n"
            "=================="
        )
