from __future__ import annotations

from dataclasses import replace
import logging
from pathlib import Path
import time

from knowledge.cache import ChunkCache
from knowledge.chunker import MAX_WORDS_PER_CHUNK, MIN_WORDS_PER_CHUNK, chunk_markdown_document
from knowledge.llm_client import OllamaClient
from knowledge.models import DocumentChunk, IndexStats
from knowledge.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


async def build_index(
    knowledge_dir: str | Path,
    llm: OllamaClient,
    store: SQLiteStore,
    *,
    cache: ChunkCache | None = None,
    max_words: int = MAX_WORDS_PER_CHUNK,
    min_words: int = MIN_WORDS_PER_CHUNK,
) -> IndexStats:
    """Rebuild the stored chunk set from every markdown file in `knowledge_dir`.

    All chunks are embedded before anything is written, and the old set is
    swapped out in one transaction. An embedding failure therefore leaves
    the previous index in place.
    """
    started = time.monotonic()
    root = Path(knowledge_dir)
    if not root.exists():
        raise FileNotFoundError(f"Knowledge base path does not exist: {root}")

    files = sorted(path for path in root.glob("*.md") if path.is_file())
    if not files:
        logger.info("No markdown files found in %s", root)
        return IndexStats(duration_ms=_elapsed_ms(started))

    logger.info("Found %d markdown files in %s", len(files), root)
    embedded: list[DocumentChunk] = []
    for path in files:
        content = path.read_text(encoding="utf-8")
        chunks = chunk_markdown_document(path.name, content, max_words=max_words, min_words=min_words)
        logger.info("Processing %s: %d chunks", path.name, len(chunks))
        for position, chunk in enumerate(chunks, start=1):
            logger.debug("Embedding %s chunk %d/%d", path.name, position, len(chunks))
            vector = await llm.embed(chunk.content)
            embedded.append(replace(chunk, embedding=tuple(vector)))

    store.replace_chunks(embedded)
    if cache is not None:
        cache.load()

    stats = IndexStats(
        total_files=len(files),
        total_chunks=len(embedded),
        duration_ms=_elapsed_ms(started),
    )
    logger.info(
        "Index built: %d chunks from %d files in %dms",
        stats.total_chunks,
        stats.total_files,
        stats.duration_ms,
    )
    return stats


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
