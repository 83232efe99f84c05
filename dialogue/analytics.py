from __future__ import annotations

from dataclasses import dataclass
import secrets
import time
from typing import Any, Iterable

from knowledge.models import ChatMessage


@dataclass(slots=True)
class LoggedMessage:
    role: str
    content: str
    at: int
    word_count: int


@dataclass(slots=True)
class TurnLog:
    session_id: str
    turn_id: str
    user: LoggedMessage
    assistant: LoggedMessage
    latency_ms: int
    # Words in the composed message list sent to the model.
    context_word_count: int

    def to_row(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "turn_id": self.turn_id,
            "user_content": self.user.content,
            "user_at": self.user.at,
            "user_word_count": self.user.word_count,
            "assistant_content": self.assistant.content,
            "assistant_at": self.assistant.at,
            "assistant_word_count": self.assistant.word_count,
            "latency_ms": self.latency_ms,
            "context_word_count": self.context_word_count,
        }


def word_count(text: str) -> int:
    return len(text.split())


def context_word_count(messages: Iterable[ChatMessage]) -> int:
    return sum(word_count(message.content) for message in messages)


def new_turn_id() -> str:
    return f"turn_{int(time.time() * 1000)}_{secrets.token_hex(6)}"
