"""Paragraph and sentence aware document chunking with overlap."""
from __future__ import annotations

import logging
import re

from .config import ChunkingSettings
from .models import Document, DocumentChunk

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

PARAGRAPH_JOINER = "\n\n"
SENTENCE_JOINER = " "


class DocumentChunker:
    """Splits long documents into overlapping chunks for independent retrieval."""

    def __init__(self, settings: ChunkingSettings | None = None) -> None:
        self.settings = settings or ChunkingSettings()

    def chunk(
        self, document: Document, chunk_size: int | None = None, overlap: int | None = None
    ) -> list[DocumentChunk]:
        chunk_size = self.settings.chunk_size if chunk_size is None else chunk_size
        overlap = self.settings.overlap if overlap is None else overlap
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap < 0:
            raise ValueError("overlap must not be negative")

        text = document.text or ""
        if not text.strip():
            return []

        pieces: list[tuple[str, int]] = []
        buffer = ""
        seed_length = 0
        for unit, joiner in self._units(text, chunk_size):
            candidate = f"{buffer}{joiner}{unit}" if buffer else unit
            if buffer and len(candidate) > chunk_size:
                pieces.append((buffer, seed_length))
                seed = self.overlap_suffix(buffer, overlap)
                allowed = chunk_size + overlap - len(unit) - len(joiner)
                if len(seed) > allowed:
                    seed = seed[len(seed) - allowed :] if allowed > 0 else ""
                seed_length = len(seed)
                buffer = f"{seed}{joiner}{unit}" if seed else unit
            else:
                buffer = candidate
        if buffer.strip():
            pieces.append((buffer, seed_length))

        chunks = [
            DocumentChunk(
                id=f"{document.id}_chunk_{index}",
                document_id=document.id,
                document_name=document.name,
                text=piece,
                chunk_index=index,
                overlap_length=seed,
            )
            for index, (piece, seed) in enumerate(pieces)
        ]
        logger.info("Document '%s' split into %d chunks", document.name, len(chunks))
        return chunks

    @staticmethod
    def overlap_suffix(text: str, overlap: int) -> str:
        """Tail of ``text`` carried into the next chunk, starting at a sentence when one begins early."""

        if overlap <= 0:
            return ""
        suffix = text[-overlap:] if len(text) > overlap else text
        boundary = suffix.find(". ")
        if 0 < boundary < overlap / 2:
            suffix = suffix[boundary + 2 :]
        return suffix.lstrip()

    @staticmethod
    def _units(text: str, chunk_size: int) -> list[tuple[str, str]]:
        units: list[tuple[str, str]] = []
        paragraphs = [part.strip() for part in _PARAGRAPH_BREAK.split(text) if part.strip()]
        for paragraph in paragraphs:
            if len(paragraph) <= chunk_size:
                units.append((paragraph, PARAGRAPH_JOINER))
                continue
            joiner = PARAGRAPH_JOINER
            for sentence in _SENTENCE_BREAK.split(paragraph):
                if not sentence:
                    continue
                if len(sentence) <= chunk_size:
                    units.append((sentence, joiner))
                else:
                    for start in range(0, len(sentence), chunk_size):
                        # Windows of one sentence rejoin without a separator.
                        units.append((sentence[start : start + chunk_size], joiner if start == 0 else ""))
                joiner = SENTENCE_JOINER
        return units
