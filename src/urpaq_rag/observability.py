"""Observability helpers for tracing, metrics, and logging."""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from time import perf_counter

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Counter, Histogram

from .config import ObservabilitySettings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"

logger = logging.getLogger("urpaq_rag")
tracer = trace.get_tracer(__name__)

REQUEST_LATENCY = Histogram(
    "rag_request_latency_ms",
    "Latency of RAG requests",
    buckets=(50, 100, 250, 500, 1000, 2000, 5000, 10000, 30000),
)
STAGE_LATENCY = Histogram(
    "rag_stage_latency_ms",
    "Latency of individual pipeline stages",
    labelnames=("stage",),
    buckets=(1, 5, 25, 100, 500, 1000, 5000, 30000),
)
PIPELINE_OUTCOMES = Counter("rag_pipeline_outcomes", "Finished RAG requests", labelnames=("outcome",))
PIPELINE_ERRORS = Counter("rag_pipeline_errors", "Failed RAG requests by error type", labelnames=("error_type",))
PIPELINE_RETRIES = Counter("rag_pipeline_retries", "Pipeline retry attempts")
VALIDATION_ISSUES = Counter("rag_validation_issues", "Invalid generated answers", labelnames=("issue",))
CACHE_LOOKUPS = Counter("rag_cache_lookups", "Cache lookups", labelnames=("cache", "result"))

_tracing_configured = False


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logger.setLevel(level.upper())


def configure_tracing(settings: ObservabilitySettings) -> None:
    """Install an OTLP exporting tracer provider once per process."""

    global _tracing_configured
    if not settings.enable_tracing or _tracing_configured:
        return
    resource = Resource.create({"service.name": "urpaq-rag"})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    _tracing_configured = True
    logger.info("Tracing enabled, exporting to %s", settings.otlp_endpoint)


@contextmanager
def traced_span(name: str) -> Iterator[None]:
    start = perf_counter()
    with tracer.start_as_current_span(name):
        try:
            yield
        finally:
            STAGE_LATENCY.labels(name).observe((perf_counter() - start) * 1000)
