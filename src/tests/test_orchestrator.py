import asyncio

from urpaq_rag.container import build_container
from urpaq_rag.errors import GenerationError
from urpaq_rag.index import InMemoryDocumentIndex
from urpaq_rag.models import QueryCategory, ValidationIssue
from urpaq_rag.orchestrator import (
    ERROR_PREFIX,
    FALLBACK_PREFIX,
    FALLBACK_SUFFIX,
    NO_DOCUMENTS_CONTEXT,
    RETRY_LATER_HINT,
    TIMEOUT_HINT,
)

from .conftest import CORPUS, FakeBackend, make_settings


class FailingRetriever:
    def __init__(self) -> None:
        self.calls = 0

    async def search(self, processed_query, top_k=None):
        self.calls += 1
        raise RuntimeError("index unavailable")


def _container(backend, **pipeline):
    return build_container(make_settings(**pipeline), backend=backend, index=InMemoryDocumentIndex(CORPUS))


def test_schedule_question_end_to_end(container, backend):
    response = asyncio.run(container.orchestrator.process_query("Какое расписание звонков?"))

    assert response.processed_query.category is QueryCategory.SCHEDULE
    assert response.source_documents[0].document.id == "schedule_bells"
    assert response.is_valid is True
    assert response.validation_issue is ValidationIssue.NONE
    assert response.answer == backend.answer
    assert "КАТЕГОРИЯ: Расписание" in backend.prompts[0]
    assert "Документ 1: Расписание звонков" in backend.prompts[0]

    snapshot = container.metrics.snapshot()
    assert (snapshot.total_requests, snapshot.successful_requests, snapshot.failed_requests) == (1, 1, 0)


def test_no_documents_uses_not_found_context(container, backend):
    response = asyncio.run(container.orchestrator.process_query("Сколько стоит летняя академия?"))

    assert response.source_documents == []
    assert response.sources_summary == "Источники не найдены"
    assert NO_DOCUMENTS_CONTEXT in backend.prompts[0]
    assert "=== НАЙДЕННАЯ ИНФОРМАЦИЯ ===" not in backend.prompts[0]


def test_generation_timeout_falls_back_to_context_excerpt():
    container = _container(FakeBackend(delay=1.0), generation_timeout_seconds=0.05)

    response = asyncio.run(container.orchestrator.process_query("Какое расписание звонков?"))

    assert response.answer.startswith(FALLBACK_PREFIX.strip())
    assert FALLBACK_SUFFIX.strip() in response.answer
    assert "Расписание звонков" in response.answer
    assert response.is_valid is True
    assert container.metrics.snapshot().successful_requests == 1


def test_generation_error_falls_back():
    container = _container(FakeBackend(error=GenerationError("empty answer")))
    response = asyncio.run(container.orchestrator.process_query("Какой телефон приемной?"))
    assert response.answer.startswith(FALLBACK_PREFIX.strip())


def test_fallback_without_context_apologizes(container):
    answer = asyncio.run(
        container.orchestrator.generate_response("  ", "вопрос", container.orchestrator.classifier.classify("вопрос"))
    )
    assert answer == container.orchestrator.backend.answer

    failing = _container(FakeBackend(error=RuntimeError("down")))
    processed = failing.orchestrator.classifier.classify("вопрос")
    answer = asyncio.run(failing.orchestrator.generate_response("", "вопрос", processed))
    assert answer == "Извините, произошла ошибка при генерации ответа. Попробуйте еще раз."


def test_failures_are_retried_then_reported(container):
    retriever = FailingRetriever()
    container.orchestrator.retriever = retriever

    response = asyncio.run(container.orchestrator.process_query("Какое расписание звонков?"))

    assert retriever.calls == 3
    assert response.answer == ERROR_PREFIX + RETRY_LATER_HINT
    assert response.is_valid is False
    assert response.validation_issue is ValidationIssue.EMPTY_RESPONSE
    assert response.source_documents == []
    assert response.processed_query.category is QueryCategory.GENERAL
    assert response.processed_query.original_query == "Какое расписание звонков?"

    snapshot = container.metrics.snapshot()
    assert snapshot.total_retries == 2
    assert (snapshot.total_requests, snapshot.failed_requests) == (1, 1)
    assert snapshot.error_types == {"RuntimeError": 1}
    assert container.cache.stats().search_cache_size == 0


def test_overall_timeout_wins_over_generation_timeout():
    container = _container(FakeBackend(delay=1.0), timeout_seconds=0.05, generation_timeout_seconds=5.0)

    response = asyncio.run(container.orchestrator.process_query("Какое расписание звонков?"))

    assert response.answer == ERROR_PREFIX + TIMEOUT_HINT
    snapshot = container.metrics.snapshot()
    assert snapshot.error_types == {"TimeoutError": 1}
    assert snapshot.total_retries == 0


def test_non_string_query_is_not_retried(container):
    response = asyncio.run(container.orchestrator.process_query(42))

    assert response.answer == ERROR_PREFIX + RETRY_LATER_HINT
    assert response.processed_query.original_query == ""
    snapshot = container.metrics.snapshot()
    assert snapshot.total_retries == 0
    assert snapshot.error_types == {"QueryInputError": 1}


def test_invalid_answer_is_recorded_but_request_succeeds():
    container = _container(FakeBackend(answer="Я не знаю."))

    response = asyncio.run(container.orchestrator.process_query("Какой телефон приемной?"))

    assert response.validation_issue is ValidationIssue.HALLUCINATION
    assert response.is_valid is False
    snapshot = container.metrics.snapshot()
    assert snapshot.validation_issues == {ValidationIssue.HALLUCINATION: 1}
    assert snapshot.successful_requests == 1


def test_repeated_query_is_served_from_caches(container, backend):
    async def ask_twice():
        await container.orchestrator.process_query("Какое расписание звонков?")
        await container.orchestrator.process_query("  какое расписание звонков?")

    asyncio.run(ask_twice())

    stats = container.cache.stats()
    assert (stats.query_cache_size, stats.search_cache_size) == (1, 1)
    assert len(backend.prompts) == 2


def test_concurrent_queries_record_each_request_once(container):
    questions = ["Какое расписание звонков?", "Какой телефон?", "Какие кружки?", "Где лаборатории?", "Привет"]

    async def ask_all():
        return await asyncio.gather(*(container.orchestrator.process_query(q) for q in questions))

    responses = asyncio.run(ask_all())

    assert len(responses) == 5
    assert container.metrics.snapshot().total_requests == 5
