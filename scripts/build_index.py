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
from knowledge.indexer import build_index
from knowledge.llm_client import ModelClientError, OllamaClient
from knowledge.models import IndexStats
from knowledge.storage.sqlite_store import SQLiteStore

app = typer.Typer(help="Chunk and embed the markdown knowledge base into SQLite.")
console = Console()


def _configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _render_stats(stats: IndexStats) -> None:
    table = Table(title="Knowledge Index Summary")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Files Processed", str(stats.total_files))
    table.add_row("Chunks Created", str(stats.total_chunks))
    table.add_row("Duration (ms)", str(stats.duration_ms))
    console.print(table)


async def _build(knowledge_dir: Path) -> IndexStats:
    settings = get_settings()
    llm = OllamaClient(settings)
    try:
        return await build_index(
            knowledge_dir,
            llm,
            SQLiteStore(settings.sqlite_path),
            max_words=settings.chunk_max_words,
            min_words=settings.chunk_min_words,
        )
    finally:
        await llm.close()


@app.command("run")
def run(
    knowledge_dir: Optional[Path] = typer.Option(
        None,
        help="Directory of markdown files (defaults to KNOWLEDGE_BASE_PATH).",
    ),
    log_level: str = typer.Option("INFO", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    _configure_logging(log_level)
    target = knowledge_dir or get_settings().knowledge_dir
    try:
        stats = asyncio.run(_build(target))
    except (FileNotFoundError, ModelClientError) as exc:
        console.print(f"[red]Index build failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    _render_stats(stats)


if __name__ == "__main__":
    app()
