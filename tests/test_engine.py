from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from dialogue.context_store import SessionContextStore
from dialogue.engine import ChatEngine, describe_turn
from dialogue.sink import AnalyticsSink
from fakes import FakeLLM, make_chunk
from knowledge.cache import ChunkCache
from knowledge.llm_client import ModelClientError
from knowledge.retriever import KnowledgeRetriever
from knowledge.storage.sqlite_store import SQLiteStore

PROMPT = "You answer questions about the owner's portfolio."
SESSION = "session-engine-1"


def _engine(tmp_path: Path, llm: FakeLLM) -> tuple[ChatEngine, SQLiteStore, AnalyticsSink]:
    db = SQLiteStore(tmp_path / "chat.db")
    db.insert_chunks_batch(
        [
            make_chunk("project-wordle.md", 0, [1.0, 0.0, 0.0], content="A Wordle solver in Python."),
            make_chunk("owner-details.md", 0, [1.0, 0.0, 0.0], document_type="personal_info"),
        ]
    )
    cache = ChunkCache(db)
    cache.load()
    sink = AnalyticsSink(db)
    contexts = SessionContextStore(PROMPT, sink)
    retriever = KnowledgeRetriever(cache, llm)
    return ChatEngine(contexts, retriever, llm, sink), db, sink


def test_project_turn_injects_context_and_logs(tmp_path: Path) -> None:
    llm = FakeLLM(reply="He built a Wordle solver.")
    engine, db, sink = _engine(tmp_path, llm)
    try:
        result = asyncio.run(engine.chat(SESSION, "what projects has he built?"))
        sink.flush()
    finally:
        sink.close()

    assert result.text == "He built a Wordle solver."
    assert result.intent == "project"
    assert result.sources == ["project-wordle.md"]
    assert result.turn_id.startswith("turn_")

    (sent,) = llm.chat_calls
    assert [m.role for m in sent] == ["system", "system", "user"]
    assert "[RETRIEVED CONTEXT from project-wordle]" in sent[1].content

    window = engine.contexts.messages(SESSION)
    assert [m.role for m in window] == ["system", "user", "assistant"]

    (turn,) = db.fetch_turns(SESSION)
    assert turn["turn_id"] == result.turn_id
    assert turn["assistant_content"] == "He built a Wordle solver."
    assert turn["user_word_count"] == 5
    assert turn["context_word_count"] == result.context_word_count

    (log,) = db.fetch_retrieval_logs(SESSION)
    assert log["turn_id"] == result.turn_id
    assert log["chunks_retrieved"] == 1
    assert log["classification"] == "project"

    summary = describe_turn(result)
    assert summary["sources"] == ["project-wordle.md"]


def test_greeting_turn_skips_retrieval(tmp_path: Path) -> None:
    llm = FakeLLM(reply="Hello!")
    engine, _, sink = _engine(tmp_path, llm)
    try:
        result = asyncio.run(engine.chat(SESSION, "hi"))
    finally:
        sink.close()

    assert result.intent == "greeting"
    assert result.sources == []
    assert llm.embed_calls == []
    assert [m.role for m in llm.chat_calls[0]] == ["system", "user"]


def test_retrieval_failure_leaves_window_untouched(tmp_path: Path) -> None:
    llm = FakeLLM(fail_embed=True)
    engine, db, sink = _engine(tmp_path, llm)
    try:
        with pytest.raises(ModelClientError):
            asyncio.run(engine.chat(SESSION, "what projects has he built?"))
        sink.flush()
    finally:
        sink.close()

    assert [m.role for m in engine.contexts.messages(SESSION)] == ["system"]
    assert llm.chat_calls == []
    assert db.fetch_turns(SESSION) == []


def test_chat_failure_keeps_user_message_only(tmp_path: Path) -> None:
    llm = FakeLLM(fail_chat=True)
    engine, db, sink = _engine(tmp_path, llm)
    try:
        with pytest.raises(ModelClientError):
            asyncio.run(engine.chat(SESSION, "hello there"))
        sink.flush()
    finally:
        sink.close()

    window = engine.contexts.messages(SESSION)
    assert [(m.role, m.content) for m in window[1:]] == [("user", "hello there")]
    assert db.fetch_turns(SESSION) == []
    assert db.fetch_retrieval_logs(SESSION) == []


def test_reset_clears_history(tmp_path: Path) -> None:
    llm = FakeLLM()
    engine, _, sink = _engine(tmp_path, llm)
    try:
        asyncio.run(engine.chat(SESSION, "hi"))
        engine.reset(SESSION)
    finally:
        sink.close()
    assert [m.role for m in engine.contexts.messages(SESSION)] == ["system"]
