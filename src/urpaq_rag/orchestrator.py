"""LangGraph pipeline: classify, retrieve, assemble context, generate, validate."""
from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from .cache import CacheService
from .config import PipelineSettings
from .context import ContextBuilder
from .errors import QueryInputError
from .llm import GenerationBackend
from .metrics import RagMetrics
from .models import ProcessedQuery, QueryCategory, RagResponse, ScoredDocument, ValidationIssue
from .observability import REQUEST_LATENCY, traced_span
from .query_processing import QueryClassifier
from .retrieval import HybridRetriever
from .validation import ResponseValidator

logger = logging.getLogger(__name__)

NO_DOCUMENTS_CONTEXT = "Информация не найдена"
FALLBACK_PREFIX = "На основе найденной информации:\n\n"
FALLBACK_SUFFIX = "\n\n(Полный ответ не был сгенерирован из-за технической ошибки)"
GENERATION_ERROR_TEXT = "Извините, произошла ошибка при генерации ответа. Попробуйте еще раз."
ERROR_PREFIX = "Извините, произошла ошибка при обработке вашего запроса. "
TIMEOUT_HINT = "Превышено время ожидания. Попробуйте упростить запрос."
RETRY_LATER_HINT = "Пожалуйста, попробуйте еще раз позже."


class PipelineState(TypedDict, total=False):
    query: Any
    processed_query: ProcessedQuery
    documents: list[ScoredDocument]
    context: str
    answer: str
    response: RagResponse


class RagOrchestrator:
    """Runs one query through the pipeline with retries and an overall deadline.

    ``process_query`` never raises for pipeline failures: timeouts and
    exhausted retries become an apology ``RagResponse``. Success or failure is
    recorded in ``metrics`` exactly once per call.
    """

    def __init__(
        self,
        classifier: QueryClassifier,
        retriever: HybridRetriever,
        context_builder: ContextBuilder,
        validator: ResponseValidator,
        cache: CacheService,
        backend: GenerationBackend,
        metrics: RagMetrics,
        settings: PipelineSettings | None = None,
        top_k: int = 5,
    ) -> None:
        self.classifier = classifier
        self.retriever = retriever
        self.context_builder = context_builder
        self.validator = validator
        self.cache = cache
        self.backend = backend
        self.metrics = metrics
        self.settings = settings or PipelineSettings()
        self.top_k = top_k
        self._graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(PipelineState)
        graph.add_node("classify", self._classify_node)
        graph.add_node("retrieve", self._retrieve_node)
        graph.add_node("assemble_context", self._assemble_context_node)
        graph.add_node("generate", self._generate_node)
        graph.add_node("validate", self._validate_node)
        graph.add_edge(START, "classify")
        graph.add_edge("classify", "retrieve")
        graph.add_conditional_edges(
            "retrieve",
            self._route_after_retrieve,
            {"assemble_context": "assemble_context", "generate": "generate"},
        )
        graph.add_edge("assemble_context", "generate")
        graph.add_edge("generate", "validate")
        graph.add_edge("validate", END)
        return graph

    async def process_query(self, query: str | None) -> RagResponse:
        start = perf_counter()
        logger.info("=== RAG pipeline started for query: %r ===", query)
        try:
            with traced_span("pipeline"):
                response = await asyncio.wait_for(self._run_with_retries(query), timeout=self.settings.timeout_seconds)
        except Exception as error:  # noqa: BLE001
            duration_ms = (perf_counter() - start) * 1000
            REQUEST_LATENCY.observe(duration_ms)
            logger.error("=== RAG pipeline failed after %.0fms: %s: %s ===", duration_ms, type(error).__name__, error)
            self.metrics.record_failure(error)
            return self.error_response(query, error)

        duration_ms = (perf_counter() - start) * 1000
        REQUEST_LATENCY.observe(duration_ms)
        logger.info("=== RAG pipeline completed in %.0fms ===", duration_ms)
        self.metrics.record_success(duration_ms)
        return response

    async def _run_with_retries(self, query: str | None) -> RagResponse:
        attempt = 0
        while True:
            try:
                final_state = await self._graph.ainvoke({"query": query})
                return final_state["response"]
            except QueryInputError:
                raise
            except Exception as error:  # noqa: BLE001
                if attempt >= self.settings.max_retries:
                    raise
                delay = self.settings.initial_backoff_seconds * (2**attempt)
                attempt += 1
                logger.warning(
                    "Retrying RAG pipeline, attempt %d in %.1fs after %s: %s",
                    attempt,
                    delay,
                    type(error).__name__,
                    error,
                )
                self.metrics.record_retry()
                await asyncio.sleep(delay)

    async def _classify_node(self, state: PipelineState) -> PipelineState:
        query = state.get("query")
        if query is not None and not isinstance(query, str):
            raise QueryInputError(f"Query must be a string, got {type(query).__name__}")
        with traced_span("classify"):
            logger.info("Step 1: Processing query")
            processed = await self.cache.get_or_compute_query(query, lambda: self.classifier.classify(query))
        return {"processed_query": processed}

    async def _retrieve_node(self, state: PipelineState) -> PipelineState:
        processed = state["processed_query"]
        with traced_span("retrieve"):
            logger.info("Step 2: Searching documents for category: %s", processed.category.name)
            documents = await self.cache.get_or_compute_search(
                processed.search_query, lambda: self.retriever.search(processed, self.top_k)
            )
        return {"documents": list(documents)}

    @staticmethod
    def _route_after_retrieve(state: PipelineState) -> str:
        return "assemble_context" if state.get("documents") else "generate"

    async def _assemble_context_node(self, state: PipelineState) -> PipelineState:
        with traced_span("assemble_context"):
            logger.info("Step 3: Building context from %d documents", len(state["documents"]))
            context = self.context_builder.build_context(state["documents"], state["processed_query"])
        return {"context": context}

    async def _generate_node(self, state: PipelineState) -> PipelineState:
        processed = state["processed_query"]
        context = state.get("context", NO_DOCUMENTS_CONTEXT)
        with traced_span("generate"):
            logger.info("Step 4: Generating response")
            answer = await self.generate_response(context, processed.original_query, processed)
        return {"context": context, "answer": answer}

    async def _validate_node(self, state: PipelineState) -> PipelineState:
        processed = state["processed_query"]
        with traced_span("validate"):
            logger.info("Step 5: Validating response")
            validation = self.validator.validate(state.get("answer"), processed.original_query)
            if not validation.is_valid:
                logger.warning("Response validation failed: %s", validation.issue.value)
                self.metrics.record_validation_failure(validation.issue)
        response = RagResponse(
            answer=validation.processed_text,
            processed_query=processed,
            source_documents=state.get("documents", []),
            is_valid=validation.is_valid,
            validation_issue=validation.issue,
        )
        return {"response": response}

    async def generate_response(self, context: str, user_query: str, processed_query: ProcessedQuery) -> str:
        """Call the backend under the generation deadline, degrading to a context excerpt."""

        prompt = self.context_builder.build_prompt(context, user_query, processed_query)
        logger.debug("Calling generation backend with prompt length: %d", len(prompt))
        try:
            return await asyncio.wait_for(
                self.backend.generate(prompt), timeout=self.settings.generation_timeout_seconds
            )
        except Exception as error:  # noqa: BLE001
            logger.error("Error generating response: %s: %s", type(error).__name__, error)
            if context.strip():
                excerpt = context[: self.settings.fallback_context_chars]
                return f"{FALLBACK_PREFIX}{excerpt}{FALLBACK_SUFFIX}"
            return GENERATION_ERROR_TEXT

    @staticmethod
    def error_response(query: Any, error: BaseException) -> RagResponse:
        hint = TIMEOUT_HINT if isinstance(error, asyncio.TimeoutError) else RETRY_LATER_HINT
        original = query if isinstance(query, str) else ""
        return RagResponse(
            answer=ERROR_PREFIX + hint,
            processed_query=ProcessedQuery(original, "", QueryCategory.GENERAL, ""),
            source_documents=[],
            is_valid=False,
            validation_issue=ValidationIssue.EMPTY_RESPONSE,
        )
