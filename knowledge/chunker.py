from __future__ import annotations

from dataclasses import dataclass
import re

from knowledge.models import (
    DOC_TYPE_GENERAL,
    DOC_TYPE_PERSONAL,
    DOC_TYPE_PROJECT,
    DocumentChunk,
)

MAX_WORDS_PER_CHUNK = 600
MIN_WORDS_PER_CHUNK = 50

_H2_RE = re.compile(r"^##\s+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\n+")


@dataclass(slots=True)
class _Section:
    heading: str | None
    body: str

    def full_text(self) -> str:
        body = self.body.strip()
        return f"{self.heading}\n\n{body}" if self.heading else body


def infer_document_type(filename: str) -> str:
    name = filename.lower().rsplit("/", 1)[-1]
    if name == "details.md" or name.endswith("-details.md") or name.startswith("personal-"):
        return DOC_TYPE_PERSONAL
    if name.startswith("project-") or "-overview.md" in name:
        return DOC_TYPE_PROJECT
    return DOC_TYPE_GENERAL


def count_words(text: str) -> int:
    return len(text.split())


def _split_sections(content: str) -> list[_Section]:
    sections: list[_Section] = []
    heading: str | None = None
    lines: list[str] = []

    def flush() -> None:
        body = "\n".join(lines)
        if heading is not None or body.strip():
            sections.append(_Section(heading=heading, body=body))

    for line in content.split("\n"):
        if _H2_RE.match(line):
            flush()
            heading = line.strip()
            lines = []
        else:
            lines.append(line)
    flush()

    if not sections:
        sections.append(_Section(heading=None, body=content))
    return sections


def _join_parts(heading: str | None, paragraphs: list[str]) -> str:
    blocks = [heading, *paragraphs] if heading else paragraphs
    return "\n\n".join(blocks).strip()


def _split_large_section(body: str, heading: str | None, max_words: int) -> list[str]:
    parts: list[str] = []
    current: list[str] = []

    for paragraph in _PARAGRAPH_SPLIT_RE.split(body):
        if not paragraph.strip():
            continue
        candidate = current + [paragraph.strip()]
        if current and count_words(_join_parts(heading, candidate)) > max_words:
            parts.append(_join_parts(heading, current))
            current = [paragraph.strip()]
        else:
            current = candidate

    if current:
        parts.append(_join_parts(heading, current))
    return parts or [_join_parts(heading, [body])]


def chunk_markdown_document(
    source_file: str,
    content: str,
    *,
    max_words: int = MAX_WORDS_PER_CHUNK,
    min_words: int = MIN_WORDS_PER_CHUNK,
) -> list[DocumentChunk]:
    """Split a markdown document into heading-aware chunks.

    Sections start at level-2 headings. Oversized sections are split at
    paragraph boundaries with the heading repeated on every part, and an
    undersized section is folded into the next one when the pair still fits.
    """
    document_type = infer_document_type(source_file)
    sections = _split_sections(content)
    chunks: list[DocumentChunk] = []

    def emit(text: str, heading: str | None) -> None:
        chunks.append(
            DocumentChunk(
                source_file=source_file,
                chunk_index=len(chunks),
                heading=heading,
                content=text,
                char_count=len(text),
                word_count=count_words(text),
                document_type=document_type,
            )
        )

    index = 0
    while index < len(sections):
        section = sections[index]
        full_text = section.full_text()
        words = count_words(full_text)

        if words > max_words:
            for part in _split_large_section(section.body.strip(), section.heading, max_words):
                emit(part, section.heading)
            index += 1
            continue

        if words < min_words and index + 1 < len(sections):
            following = sections[index + 1]
            if words + count_words(following.body) < max_words:
                pieces = [full_text, following.heading or "", following.body.strip()]
                merged = "\n\n".join(piece for piece in pieces if piece)
                emit(merged, section.heading or following.heading)
                index += 2
                continue

        emit(full_text, section.heading)
        index += 1

    return chunks
