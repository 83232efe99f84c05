"""
Per-session conversation windows.

Each window is an ordered list of messages whose first element is always the
base system prompt. After every append the window is trimmed, oldest
non-system message first, until it fits both the message-count and the
character budget. Windows idle for longer than the TTL are dropped by
`sweep_expired`; the next reference to the same id simply starts a new one.

Durable bookkeeping goes through the analytics sink, which never blocks or
raises into the caller.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import threading
import time
from typing import Callable, Iterable

from config.settings import Settings
from dialogue.sink import AnalyticsSink
from knowledge.models import ChatMessage, Role

logger = logging.getLogger(__name__)

RETRIEVED_CONTEXT_PREAMBLE = (
    "The following information was retrieved from the knowledge base. "
    "Use it to answer the user's latest message when it is relevant."
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def total_chars(messages: Iterable[ChatMessage]) -> int:
    return sum(len(message.content) for message in messages)


@dataclass(slots=True)
class SessionWindow:
    session_id: str
    messages: list[ChatMessage]
    created_at_ms: int
    last_seen_at_ms: int
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def char_count(self) -> int:
        return total_chars(self.messages)


@dataclass(frozen=True, slots=True)
class SweepResult:
    removed: int
    remaining: int


class SessionContextStore:
    def __init__(
        self,
        system_prompt: str,
        sink: AnalyticsSink | None = None,
        *,
        max_messages: int = 30,
        max_chars: int = 12_000,
        ttl_ms: int = 30 * 60 * 1000,
        clock: Callable[[], int] | None = None,
    ) -> None:
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.system_prompt = system_prompt
        self.sink = sink
        self.max_messages = max_messages
        self.max_chars = max_chars
        self.ttl_ms = ttl_ms
        self._clock = clock or _now_ms
        self._windows: dict[str, SessionWindow] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        system_prompt: str,
        sink: AnalyticsSink | None = None,
    ) -> "SessionContextStore":
        return cls(
            system_prompt,
            sink,
            max_messages=settings.max_messages,
            max_chars=settings.max_chars,
            ttl_ms=settings.session_ttl_ms,
        )

    def get_or_create(self, session_id: str) -> SessionWindow:
        now = self._clock()
        with self._lock:
            window = self._windows.get(session_id)
            if window is not None:
                window.last_seen_at_ms = now
                return window
            window = SessionWindow(
                session_id=session_id,
                messages=[self._system_message(now)],
                created_at_ms=now,
                last_seen_at_ms=now,
            )
            self._windows[session_id] = window

        logger.debug("Created session window %s", session_id)
        if self.sink is not None:
            self.sink.create_session(session_id, now)
            self.sink.insert_message(session_id, "system", self.system_prompt, 0, now)
        return window

    def append_user(self, session_id: str, text: str) -> ChatMessage:
        return self._append(session_id, "user", text)

    def append_assistant(self, session_id: str, text: str) -> ChatMessage:
        return self._append(session_id, "assistant", text)

    def messages(self, session_id: str) -> list[ChatMessage]:
        window = self.get_or_create(session_id)
        with window.lock:
            return list(window.messages)

    def compose_for_inference(self, session_id: str, retrieved_context: str = "") -> list[ChatMessage]:
        """Message list for one model call; never written back to the window.

        With retrieved context, system messages are always kept and history
        is added newest-first until the next message would break the
        character budget.
        """
        window = self.get_or_create(session_id)
        with window.lock:
            current = list(window.messages)
        if not retrieved_context:
            return current

        context_message = ChatMessage(
            role="system",
            content=f"{RETRIEVED_CONTEXT_PREAMBLE}\n\n{retrieved_context}",
            timestamp_ms=self._clock(),
        )
        system_messages = [current[0], context_message]
        history = [message for message in current[1:] if message.role != "system"]

        used = total_chars(system_messages)
        kept: list[ChatMessage] = []
        for message in reversed(history):
            if used + len(message.content) > self.max_chars:
                break
            kept.append(message)
            used += len(message.content)

        kept.reverse()
        return system_messages + kept

    def reset(self, session_id: str) -> None:
        window = self.get_or_create(session_id)
        now = self._clock()
        with window.lock:
            window.messages = [self._system_message(now)]
            window.last_seen_at_ms = now
        if self.sink is not None:
            self.sink.increment_reset(session_id)

    def sweep_expired(self, now_ms: int | None = None) -> SweepResult:
        now = self._clock() if now_ms is None else now_ms
        with self._lock:
            expired = [
                session_id
                for session_id, window in self._windows.items()
                if now - window.last_seen_at_ms > self.ttl_ms
            ]
            for session_id in expired:
                del self._windows[session_id]
            remaining = len(self._windows)

        if expired and self.sink is not None:
            self.sink.mark_expired(expired, now)
        return SweepResult(removed=len(expired), remaining=remaining)

    def session_count(self) -> int:
        with self._lock:
            return len(self._windows)

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._windows

    def _append(self, session_id: str, role: Role, text: str) -> ChatMessage:
        window = self.get_or_create(session_id)
        now = self._clock()
        message = ChatMessage(role=role, content=text, timestamp_ms=now)
        with window.lock:
            position = len(window.messages)
            window.messages.append(message)
            window.last_seen_at_ms = now
            removed_positions = self._trim(window, now)

        if self.sink is not None:
            self.sink.insert_message(session_id, role, text, position, now)
            self.sink.update_last_seen(session_id, now)
            self.sink.mark_trimmed(session_id, removed_positions)
        return message

    def _trim(self, window: SessionWindow, now: int) -> list[int]:
        messages = window.messages
        if not messages or messages[0].role != "system":
            messages.insert(0, self._system_message(now))

        # Index 0 is the system prompt, so removals always start at 1.
        removed: list[int] = []
        while len(messages) > self.max_messages:
            del messages[1]
            removed.append(1)

        while total_chars(messages) > self.max_chars and len(messages) > 2:
            del messages[1]
            removed.append(1)
        return removed

    def _system_message(self, now: int) -> ChatMessage:
        return ChatMessage(role="system", content=self.system_prompt, timestamp_ms=now)


async def run_sweeper(store: SessionContextStore, interval_seconds: float) -> None:
    """Sweep expired windows forever on a fixed interval."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            result = store.sweep_expired()
        except Exception:
            logger.exception("Session sweep failed")
            continue
        if result.removed:
            logger.info(
                "Expired %d idle sessions, %d remaining", result.removed, result.remaining
            )
