"""FastAPI server exposing chat, administration and upload endpoints."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from pydantic import BaseModel, Field

from .cache import CacheKind
from .config import get_settings
from .container import RagContainer, build_container
from .observability import configure_logging, configure_tracing

logger = logging.getLogger(__name__)

UPLOAD_SUFFIXES = {".txt", ".md"}


class ChatRequest(BaseModel):
    message: str = Field(..., description="User question")


class SourceModel(BaseModel):
    id: str
    name: str
    score: float


class ChatResponse(BaseModel):
    message: str
    answer: str
    category: str
    is_valid: bool
    validation_issue: str
    sources: list[SourceModel]
    sources_summary: str
    timestamp: datetime


def get_container(request: Request) -> RagContainer:
    return request.app.state.container


def create_app(container: RagContainer | None = None) -> FastAPI:
    settings = container.settings if container is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(settings.observability.log_level)
        configure_tracing(settings.observability)
        if container is not None:
            app.state.container = container
        else:
            app.state.container = build_container(settings)
            corpus_dir = settings.paths.corpus_dir
            if corpus_dir is not None and corpus_dir.is_dir():
                await app.state.container.ingestion.ingest_directory(corpus_dir)
            elif corpus_dir is not None:
                logger.warning("Corpus directory %s not found, starting with an empty index", corpus_dir)
        yield

    app = FastAPI(title="Digital Urpaq RAG assistant", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.observability.enable_prometheus:
        app.mount("/metrics", make_asgi_app())

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/chat/message", response_model=ChatResponse)
    async def send_message(payload: ChatRequest, rag: RagContainer = Depends(get_container)) -> ChatResponse:  # noqa: B008
        logger.info("Received HTTP message: %s", payload.message)
        response = await rag.orchestrator.process_query(payload.message)
        return ChatResponse(
            message=payload.message,
            answer=response.answer,
            category=response.processed_query.category.name,
            is_valid=response.is_valid,
            validation_issue=response.validation_issue.value,
            sources=[SourceModel(id=doc.document.id, name=doc.name, score=doc.score) for doc in response.source_documents],
            sources_summary=response.sources_summary,
            timestamp=datetime.now(tz=timezone.utc),
        )

    @app.get("/api/admin/rag/metrics")
    def rag_metrics(rag: RagContainer = Depends(get_container)) -> dict:  # noqa: B008
        return {"metrics": rag.metrics.snapshot().as_dict(), "cache": rag.cache.stats().as_dict()}

    @app.get("/api/admin/rag/documents/stats")
    async def document_stats(rag: RagContainer = Depends(get_container)) -> dict:  # noqa: B008
        try:
            count = await rag.index.count()
        except Exception as error:  # noqa: BLE001
            logger.exception("Error fetching document stats")
            return {"totalDocuments": 0, "status": "error", "error": str(error)}
        return {"totalDocuments": count, "status": "healthy"}

    @app.post("/api/admin/rag/cache/clear")
    def clear_cache(
        cache_type: str = Query(default="all", alias="type"),
        rag: RagContainer = Depends(get_container),  # noqa: B008
    ) -> dict:
        logger.info("Clearing cache: %s", cache_type)
        kind = cache_type.lower()
        if kind == CacheKind.SEARCH.value:
            rag.cache.invalidate(CacheKind.SEARCH)
        elif kind == CacheKind.QUERY.value:
            rag.cache.invalidate(CacheKind.QUERY)
        else:
            rag.cache.invalidate_all()
        return {"status": "success", "message": f"Cache cleared: {cache_type}"}

    @app.post("/api/admin/rag/metrics/reset")
    def reset_metrics(rag: RagContainer = Depends(get_container)) -> dict:  # noqa: B008
        rag.metrics.reset()
        return {"status": "success", "message": "Metrics reset successfully"}

    @app.get("/api/admin/rag/health")
    async def rag_health(rag: RagContainer = Depends(get_container)) -> dict:  # noqa: B008
        try:
            count = await rag.index.count()
        except Exception as error:  # noqa: BLE001
            logger.exception("Health check failed")
            return {"status": "DOWN", "error": str(error)}
        return {
            "status": "UP",
            "documentsIndexed": count,
            "cacheStats": str(rag.cache.stats()),
            "successRate": f"{rag.metrics.snapshot().success_rate:.1f}%",
        }

    @app.post("/api/admin/upload/txt", status_code=201)
    async def upload_text(
        file: UploadFile = File(...),  # noqa: B008
        rag: RagContainer = Depends(get_container),  # noqa: B008
    ) -> dict:
        filename = file.filename or "upload.txt"
        if Path(filename).suffix.lower() not in UPLOAD_SUFFIXES:
            raise HTTPException(status_code=415, detail=f"Unsupported file type: {filename}")
        try:
            text = (await file.read()).decode("utf-8")
        except UnicodeDecodeError as error:
            raise HTTPException(status_code=400, detail="File must be UTF-8 encoded text") from error
        if not text.strip():
            raise HTTPException(status_code=400, detail="File is empty")
        stored = await rag.ingestion.ingest_text(Path(filename).stem, text)
        return {"document": filename, "indexed": stored}

    return app


app = create_app()

__all__ = ["app", "create_app"]
