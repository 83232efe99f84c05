from __future__ import annotations

import asyncio
from pathlib import Path

from dialogue.context_store import RETRIEVED_CONTEXT_PREAMBLE, SessionContextStore, run_sweeper, total_chars
from dialogue.sink import AnalyticsSink
from knowledge.storage.sqlite_store import SQLiteStore

PROMPT = "You are a helpful portfolio assistant."


class ManualClock:
    def __init__(self, start: int = 1_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def test_new_window_starts_with_system_prompt() -> None:
    store = SessionContextStore(PROMPT)
    messages = store.messages("session-abc")
    assert len(messages) == 1
    assert messages[0].role == "system"
    assert messages[0].content == PROMPT
    assert store.has_session("session-abc")


def test_message_count_budget_drops_oldest_non_system() -> None:
    store = SessionContextStore(PROMPT, max_messages=4)
    for i in range(6):
        store.append_user("session-abc", f"question {i}")

    messages = store.messages("session-abc")
    assert len(messages) == 4
    assert messages[0].role == "system"
    assert [m.content for m in messages[1:]] == ["question 3", "question 4", "question 5"]


def test_character_budget_keeps_system_and_newest() -> None:
    store = SessionContextStore("sys", max_chars=30)
    store.append_user("session-abc", "a" * 10)
    store.append_assistant("session-abc", "b" * 10)
    store.append_user("session-abc", "c" * 10)

    messages = store.messages("session-abc")
    assert messages[0].content == "sys"
    assert total_chars(messages) <= 30
    assert messages[-1].content == "c" * 10


def test_oversized_single_message_is_retained() -> None:
    store = SessionContextStore("sys", max_chars=10)
    store.append_user("session-abc", "x" * 50)
    messages = store.messages("session-abc")
    assert [m.role for m in messages] == ["system", "user"]


def test_compose_without_context_is_a_copy() -> None:
    store = SessionContextStore(PROMPT)
    store.append_user("session-abc", "hello")
    composed = store.compose_for_inference("session-abc")
    assert [m.content for m in composed] == [PROMPT, "hello"]

    composed.append(composed[-1])
    assert len(store.messages("session-abc")) == 2


def test_compose_with_context_injects_second_system_message() -> None:
    store = SessionContextStore(PROMPT)
    store.append_user("session-abc", "what projects?")
    composed = store.compose_for_inference("session-abc", "[RETRIEVED CONTEXT from project-a]\nAlpha")

    assert [m.role for m in composed] == ["system", "system", "user"]
    assert composed[1].content.startswith(RETRIEVED_CONTEXT_PREAMBLE)
    assert composed[1].content.endswith("Alpha")
    # The injected message is never stored.
    assert [m.role for m in store.messages("session-abc")] == ["system", "user"]


def test_compose_with_context_keeps_newest_history_within_budget() -> None:
    store = SessionContextStore("sys", max_chars=1_000)
    for text in ("first " * 20, "second " * 20, "third"):
        store.append_user("session-abc", text)

    context = "c" * 700
    composed = store.compose_for_inference("session-abc", context)
    history = [m.content for m in composed[2:]]
    assert history == ["second " * 20, "third"]
    assert total_chars(composed) <= 1_000


def test_reset_restores_single_system_message(tmp_path: Path) -> None:
    db = SQLiteStore(tmp_path / "chat.db")
    sink = AnalyticsSink(db)
    store = SessionContextStore(PROMPT, sink)
    try:
        store.append_user("session-abc", "hello")
        store.reset("session-abc")
        store.reset("session-abc")
        sink.flush()
    finally:
        sink.close()

    messages = store.messages("session-abc")
    assert len(messages) == 1 and messages[0].content == PROMPT
    session = db.fetch_session("session-abc")
    assert session is not None
    assert session["reset_count"] == 2


def test_sweep_removes_only_idle_windows() -> None:
    clock = ManualClock()
    store = SessionContextStore(PROMPT, ttl_ms=1_000, clock=clock)
    store.messages("idle-session")
    clock.advance(600)
    store.messages("active-session")
    clock.advance(600)

    result = store.sweep_expired()
    assert (result.removed, result.remaining) == (1, 1)
    assert not store.has_session("idle-session")
    assert store.has_session("active-session")

    # A later reference starts a fresh window.
    assert len(store.messages("idle-session")) == 1
    assert store.session_count() == 2


def test_sweep_exactly_at_ttl_keeps_window() -> None:
    clock = ManualClock()
    store = SessionContextStore(PROMPT, ttl_ms=1_000, clock=clock)
    store.messages("session-abc")
    assert store.sweep_expired(now_ms=clock.now + 1_000).removed == 0
    assert store.sweep_expired(now_ms=clock.now + 1_001).removed == 1


def test_durable_events_follow_window_changes(tmp_path: Path) -> None:
    db = SQLiteStore(tmp_path / "chat.db")
    sink = AnalyticsSink(db)
    clock = ManualClock()
    store = SessionContextStore(PROMPT, sink, max_messages=3, ttl_ms=1_000, clock=clock)
    try:
        store.append_user("session-abc", "one")
        store.append_assistant("session-abc", "two")
        store.append_user("session-abc", "three")
        clock.advance(5_000)
        store.sweep_expired()
        sink.flush()
    finally:
        sink.close()

    rows = db.fetch_messages("session-abc")
    assert [(r["role"], r["position"]) for r in rows] == [
        ("system", 0),
        ("user", 1),
        ("assistant", 2),
        ("user", 3),
    ]
    assert rows[1]["was_trimmed"] == 1
    session = db.fetch_session("session-abc")
    assert session is not None
    assert session["expired_at"] == clock.now


def test_sweeper_task_runs_on_interval() -> None:
    clock = ManualClock()
    store = SessionContextStore(PROMPT, ttl_ms=10, clock=clock)
    store.messages("session-abc")
    clock.advance(100)

    async def scenario() -> None:
        task = asyncio.create_task(run_sweeper(store, 0.01))
        try:
            for _ in range(100):
                if not store.has_session("session-abc"):
                    break
                await asyncio.sleep(0.01)
        finally:
            task.cancel()

    asyncio.run(scenario())
    assert store.session_count() == 0
