"""Explicit wiring of the process-wide services."""
from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from .cache import CacheService
from .chunking import DocumentChunker
from .config import AppSettings, get_settings
from .context import ContextBuilder
from .index import InMemoryDocumentIndex
from .ingestion import IngestionPipeline
from .llm import GenerationBackend, LLMService
from .metrics import RagMetrics
from .orchestrator import RagOrchestrator
from .query_processing import QueryClassifier
from .retrieval import HybridRetriever
from .validation import ResponseValidator


@dataclass(slots=True)
class RagContainer:
    settings: AppSettings
    index: InMemoryDocumentIndex
    cache: CacheService
    metrics: RagMetrics
    ingestion: IngestionPipeline
    orchestrator: RagOrchestrator


def build_container(
    settings: AppSettings | None = None,
    backend: GenerationBackend | None = None,
    index: InMemoryDocumentIndex | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> RagContainer:
    """Build every service once; tests pass a fake ``backend`` to avoid network calls."""

    settings = settings or get_settings()
    index = index if index is not None else InMemoryDocumentIndex()
    cache = CacheService(settings.cache, clock=clock)
    metrics = RagMetrics(max_recent=settings.pipeline.recent_requests)
    chunker = DocumentChunker(settings.chunking)
    orchestrator = RagOrchestrator(
        classifier=QueryClassifier(),
        retriever=HybridRetriever(index, settings.retrieval),
        context_builder=ContextBuilder(settings.context),
        validator=ResponseValidator(settings.validation),
        cache=cache,
        backend=backend if backend is not None else LLMService(settings.model),
        metrics=metrics,
        settings=settings.pipeline,
        top_k=settings.retrieval.top_k,
    )
    return RagContainer(
        settings=settings,
        index=index,
        cache=cache,
        metrics=metrics,
        ingestion=IngestionPipeline(index, cache, chunker, settings.chunking),
        orchestrator=orchestrator,
    )
