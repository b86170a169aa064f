"""Document ingestion: loading, optional chunking, indexing."""
from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
from pathlib import Path

from langchain_community.document_loaders import PyPDFLoader, TextLoader
from langchain_core.documents import Document as LoadedPage

from .cache import CacheKind, CacheService
from .chunking import DocumentChunker
from .config import ChunkingSettings
from .index import InMemoryDocumentIndex
from .models import Document

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = {".txt", ".md", ".pdf"}


class IngestionPipeline:
    """Loads files or raw text, chunks them and writes the result to the index.

    Every write invalidates the search cache so stale rankings are never served.
    """

    def __init__(
        self,
        index: InMemoryDocumentIndex,
        cache: CacheService,
        chunker: DocumentChunker | None = None,
        settings: ChunkingSettings | None = None,
    ) -> None:
        self.index = index
        self.cache = cache
        self.settings = settings or ChunkingSettings()
        self.chunker = chunker or DocumentChunker(self.settings)

    @staticmethod
    def load(path: Path) -> list[LoadedPage]:
        """Load the file with an appropriate LangChain loader."""

        mime_type, _ = mimetypes.guess_type(path)
        if mime_type == "application/pdf":
            loader = PyPDFLoader(str(path))
        else:
            loader = TextLoader(str(path), encoding="utf-8", autodetect_encoding=True)
        return loader.load()

    def prepare(self, document: Document) -> list[Document]:
        if not self.settings.use_chunking:
            return [document]
        chunks = self.chunker.chunk(document, self.settings.chunk_size, self.settings.overlap)
        if not chunks:
            logger.warning("No chunks created for document: %s", document.name)
            return [document]
        return [chunk.to_document() for chunk in chunks]

    async def ingest_document(self, document: Document) -> int:
        prepared = self.prepare(document)
        stored = await self.index.add_many(prepared)
        self.cache.invalidate(CacheKind.SEARCH)
        logger.info("Indexed document '%s' as %d entries", document.name, stored)
        return stored

    async def ingest_text(self, name: str, text: str, document_id: str | None = None) -> int:
        document_id = document_id or self._checksum(text.encode("utf-8"))[:12]
        return await self.ingest_document(Document(id=document_id, name=name, text=text))

    async def ingest_file(self, path: Path) -> int:
        pages = await asyncio.to_thread(self.load, path)
        text = "\n\n".join(page.page_content for page in pages if page.page_content.strip())
        if not text.strip():
            logger.warning("File %s contains no text, skipping", path.name)
            return 0
        checksum = self._checksum(path.read_bytes())
        return await self.ingest_document(Document(id=checksum[:12], name=path.stem, text=text))

    async def ingest_directory(self, directory: Path) -> dict[str, int]:
        """Ingest every supported file in ``directory``; returns entries stored per file name."""

        if not directory.is_dir():
            raise FileNotFoundError(f"Corpus directory not found: {directory}")
        report: dict[str, int] = {}
        for path in sorted(directory.iterdir()):
            if not path.is_file() or path.suffix.lower() not in SUPPORTED_SUFFIXES:
                continue
            report[path.name] = await self.ingest_file(path)
        logger.info(
            "Ingested %d files from %s, %d index entries in total", len(report), directory, sum(report.values())
        )
        return report

    @staticmethod
    def _checksum(payload: bytes) -> str:
        return hashlib.sha256(payload).hexdigest()
