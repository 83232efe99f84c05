from __future__ import annotations

from dataclasses import dataclass
import logging

from config.settings import Settings, get_settings, load_system_prompt
from dialogue.context_store import SessionContextStore
from dialogue.engine import ChatEngine
from dialogue.sink import AnalyticsSink
from knowledge.cache import ChunkCache
from knowledge.llm_client import OllamaClient
from knowledge.retriever import KnowledgeRetriever
from knowledge.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatRuntime:
    settings: Settings
    store: SQLiteStore
    sink: AnalyticsSink
    cache: ChunkCache
    llm: OllamaClient
    retriever: KnowledgeRetriever
    contexts: SessionContextStore
    engine: ChatEngine

    async def aclose(self) -> None:
        self.sink.close()
        await self.llm.close()


def build_runtime(
    settings: Settings | None = None,
    *,
    llm: OllamaClient | None = None,
    load_cache: bool = True,
) -> ChatRuntime:
    """Construct the process-wide objects once; handlers receive them by reference."""
    settings = settings or get_settings()
    store = SQLiteStore(settings.sqlite_path)
    sink = AnalyticsSink(store)
    cache = ChunkCache(store)
    if load_cache:
        cache.load()

    client = llm or OllamaClient(settings)
    retriever = KnowledgeRetriever(
        cache,
        client,
        top_k=settings.retrieval_top_k,
        min_similarity=settings.min_similarity,
    )
    contexts = SessionContextStore.from_settings(settings, load_system_prompt(settings), sink)
    engine = ChatEngine(contexts, retriever, client, sink)
    logger.info(
        "Runtime ready: model=%s embed=%s db=%s",
        settings.chat_model,
        settings.embed_model,
        settings.sqlite_path,
    )
    return ChatRuntime(
        settings=settings,
        store=store,
        sink=sink,
        cache=cache,
        llm=client,
        retriever=retriever,
        contexts=contexts,
        engine=engine,
    )
