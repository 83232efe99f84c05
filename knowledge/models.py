from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Role = Literal["system", "user", "assistant"]

DOC_TYPE_PERSONAL = "personal_info"
DOC_TYPE_PROJECT = "project"
DOC_TYPE_GENERAL = "general"


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Role
    content: str
    timestamp_ms: int

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class DocumentChunk:
    source_file: str
    chunk_index: int
    heading: str | None
    content: str
    char_count: int
    word_count: int
    document_type: str
    embedding: tuple[float, ...] = ()


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    chunk: DocumentChunk
    similarity: float


@dataclass(slots=True)
class IndexStats:
    total_files: int = 0
    total_chunks: int = 0
    duration_ms: int = 0
