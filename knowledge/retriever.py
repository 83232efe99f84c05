"""
Intent-gated retrieval over the in-memory chunk cache.

Greeting and general queries return immediately without an embedding call.
Project and personal queries are embedded once, scored against the chunks of
the matching document type only, then thresholded and cut to top-K.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import PurePath
import time

from knowledge.cache import ChunkCache
from knowledge.classifier import QueryIntent, classify_query
from knowledge.llm_client import OllamaClient
from knowledge.models import DOC_TYPE_PERSONAL, DOC_TYPE_PROJECT, RetrievalResult
from knowledge.similarity import cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
DEFAULT_MIN_SIMILARITY = 0.3

_DOC_TYPE_BY_INTENT: dict[str, str] = {
    "project": DOC_TYPE_PROJECT,
    "personal": DOC_TYPE_PERSONAL,
}


@dataclass(slots=True)
class RetrievalOutcome:
    intent: QueryIntent
    results: list[RetrievalResult] = field(default_factory=list)
    latency_ms: int = 0
    embedded: bool = False


class KnowledgeRetriever:
    def __init__(
        self,
        cache: ChunkCache,
        llm: OllamaClient,
        *,
        top_k: int = DEFAULT_TOP_K,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> None:
        self.cache = cache
        self.llm = llm
        self.top_k = top_k
        self.min_similarity = min_similarity

    async def retrieve(
        self,
        query: str,
        top_k: int | None = None,
        min_similarity: float | None = None,
    ) -> list[RetrievalResult]:
        outcome = await self.retrieve_with_details(query, top_k, min_similarity)
        return outcome.results

    async def retrieve_with_details(
        self,
        query: str,
        top_k: int | None = None,
        min_similarity: float | None = None,
    ) -> RetrievalOutcome:
        limit = self.top_k if top_k is None else top_k
        threshold = self.min_similarity if min_similarity is None else min_similarity
        started = time.perf_counter()

        intent = classify_query(query)
        logger.debug("Query classified as %s", intent)
        if intent not in _DOC_TYPE_BY_INTENT:
            return RetrievalOutcome(intent=intent, latency_ms=_elapsed_ms(started))

        query_embedding = await self.llm.embed(query)

        document_type = _DOC_TYPE_BY_INTENT[intent]
        candidates = [chunk for chunk in self.cache.query() if chunk.document_type == document_type]
        if not candidates:
            logger.info("No cached chunks of type %s", document_type)
            return RetrievalOutcome(intent=intent, latency_ms=_elapsed_ms(started), embedded=True)

        scored = [
            RetrievalResult(chunk=chunk, similarity=cosine_similarity(query_embedding, chunk.embedding))
            for chunk in candidates
        ]
        # sorted() is stable, so ties keep cache order.
        ranked = sorted(scored, key=lambda result: result.similarity, reverse=True)
        kept = [result for result in ranked if result.similarity >= threshold][: max(0, limit)]

        for position, result in enumerate(ranked[:5], start=1):
            logger.debug(
                "  %d. [%.3f] %s (%s) - %s",
                position,
                result.similarity,
                result.chunk.source_file,
                result.chunk.document_type,
                result.chunk.heading or "No heading",
            )
        logger.info(
            "Retrieved %d/%d %s chunks (threshold %.2f, top-%d)",
            len(kept),
            len(candidates),
            document_type,
            threshold,
            limit,
        )
        return RetrievalOutcome(
            intent=intent,
            results=kept,
            latency_ms=_elapsed_ms(started),
            embedded=True,
        )


def format_for_context(results: list[RetrievalResult]) -> str:
    if not results:
        return ""
    blocks = []
    for result in results:
        source = PurePath(result.chunk.source_file).stem
        blocks.append(f"[RETRIEVED CONTEXT from {source}]\n{result.chunk.content}")
    return "\n\n".join(blocks)


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))
