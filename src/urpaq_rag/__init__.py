"""Retrieval-augmented question answering for the Digital Urpaq knowledge base."""

from __future__ import annotations

__version__ = "0.1.0"
