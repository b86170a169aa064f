"""Typer CLI for asking questions, chunking and ingesting files."""
from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from .chunking import DocumentChunker
from .config import get_settings
from .container import build_container
from .ingestion import IngestionPipeline
from .models import Document
from .observability import configure_logging

app = typer.Typer(help="CLI for the Digital Urpaq RAG assistant")


@app.callback()
def main(log_level: str = typer.Option("WARNING", help="Logging level")) -> None:
    configure_logging(log_level)


@app.command()
def ask(
    question: str,
    corpus: Path | None = typer.Option(None, help="Directory of .txt/.md/.pdf files to index first"),
) -> None:
    """Ask a question through the full pipeline."""

    async def _run() -> None:
        container = build_container()
        corpus_dir = corpus or container.settings.paths.corpus_dir
        if corpus_dir is not None:
            await container.ingestion.ingest_directory(corpus_dir)
        response = await container.orchestrator.process_query(question)
        typer.echo(response.answer)
        typer.echo(f"\nКатегория: {response.processed_query.category.label}")
        typer.echo(f"Источники:\n{response.sources_summary}")

    asyncio.run(_run())


@app.command()
def chunk(
    path: Path,
    size: int | None = typer.Option(None, help="Maximum chunk size in characters"),
    overlap: int | None = typer.Option(None, help="Overlap carried into the next chunk"),
) -> None:
    """Split a text file into chunks and print them."""

    settings = get_settings().chunking
    pages = IngestionPipeline.load(path)
    text = "\n\n".join(page.page_content for page in pages)
    document = Document(id=path.stem, name=path.stem, text=text)
    chunks = DocumentChunker(settings).chunk(document, size, overlap)
    for item in chunks:
        typer.echo(f"--- {item.id} ({len(item.text)} chars, overlap {item.overlap_length}) ---")
        typer.echo(item.text)
    typer.echo(f"{len(chunks)} chunks")


@app.command()
def ingest(directory: Path) -> None:
    """Load a corpus directory and report how many index entries each file produced."""

    async def _run() -> None:
        container = build_container()
        report = await container.ingestion.ingest_directory(directory)
        for name, stored in report.items():
            typer.echo(f"{name}: {stored}")
        typer.echo(f"Total documents in index: {await container.index.count()}")

    asyncio.run(_run())


if __name__ == "__main__":
    app()
