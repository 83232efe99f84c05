from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config.settings import get_settings
from knowledge.cache import ChunkCache
from knowledge.llm_client import OllamaClient
from knowledge.retriever import KnowledgeRetriever
from knowledge.storage.sqlite_store import SQLiteStore

app = typer.Typer(help="Run sample queries through the retriever and show the ranking.")
console = Console()

DEFAULT_QUERIES = (
    "A new user has arrived. Just greet them and introduce yourself.",
    "When is his birthday?",
    "Where did he go to university?",
    "What projects has he built?",
)


def _configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


async def _probe(queries: list[str], top_k: int) -> None:
    settings = get_settings()
    cache = ChunkCache(SQLiteStore(settings.sqlite_path))
    cache.load()
    llm = OllamaClient(settings)
    retriever = KnowledgeRetriever(cache, llm)

    try:
        for query in queries:
            outcome = await retriever.retrieve_with_details(query, top_k=top_k, min_similarity=0.0)
            table = Table(title=f"{query}  [{outcome.intent}]")
            table.add_column("#", justify="right")
            table.add_column("Similarity", justify="right")
            table.add_column("Source")
            table.add_column("Heading")
            table.add_column("Preview")
            for position, result in enumerate(outcome.results, start=1):
                table.add_row(
                    str(position),
                    f"{result.similarity:.4f}",
                    result.chunk.source_file,
                    result.chunk.heading or "None",
                    result.chunk.content[:80].replace("\n", " "),
                )
            if not outcome.embedded:
                console.print(f"[yellow]{query}: skipped ({outcome.intent}), no embedding call[/yellow]")
                continue
            console.print(table)
            above_low = sum(1 for r in outcome.results if r.similarity >= 0.3)
            above_high = sum(1 for r in outcome.results if r.similarity >= 0.5)
            console.print(f"[dim]>= 0.3: {above_low}   >= 0.5: {above_high}[/dim]")
    finally:
        await llm.close()


@app.command("run")
def run(
    query: Optional[list[str]] = typer.Option(None, help="Query to probe (repeatable). Uses samples when omitted."),
    top_k: int = typer.Option(5, min=1, help="Results to show per query."),
    log_level: str = typer.Option("WARNING", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    _configure_logging(log_level)
    asyncio.run(_probe(list(query or DEFAULT_QUERIES), top_k))


if __name__ == "__main__":
    app()
