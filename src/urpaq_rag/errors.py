"""Exception types raised inside the RAG pipeline."""
from __future__ import annotations


class RagError(Exception):
    """Base class for pipeline errors."""


class QueryInputError(RagError, ValueError):
    """The query cannot be classified at all. Never retried."""


class GenerationError(RagError):
    """The generation backend returned no usable text."""
