from __future__ import annotations

from knowledge.chunker import chunk_markdown_document, count_words, infer_document_type


def _words(n: int, word: str = "word") -> str:
    return " ".join([word] * n)


def test_document_type_from_filename() -> None:
    assert infer_document_type("owner-details.md") == "personal_info"
    assert infer_document_type("Personal-Timeline.md") == "personal_info"
    assert infer_document_type("project-wordle.md") == "project"
    assert infer_document_type("agents-overview.md") == "project"
    assert infer_document_type("notes.md") == "general"


def test_document_without_headings_is_one_chunk() -> None:
    text = _words(120)
    chunks = chunk_markdown_document("notes.md", text)
    assert len(chunks) == 1
    assert chunks[0].heading is None
    assert chunks[0].content == text
    assert chunks[0].word_count == 120
    assert chunks[0].char_count == len(text)
    assert chunks[0].chunk_index == 0


def test_sections_split_on_level_two_headings_only() -> None:
    text = (
        "## Education\n" + _words(80, "study") + "\n"
        "### Detail\n" + _words(5, "detail") + "\n"
        "## Career\n" + _words(80, "career") + "\n"
    )
    chunks = chunk_markdown_document("owner-details.md", text)
    assert [chunk.heading for chunk in chunks] == ["## Education", "## Career"]
    assert "### Detail" in chunks[0].content
    assert all(chunk.document_type == "personal_info" for chunk in chunks)
    assert [chunk.chunk_index for chunk in chunks] == [0, 1]


def test_small_section_merges_with_next() -> None:
    text = "## Intro\n" + _words(10, "intro") + "\n## Body\n" + _words(100, "body")
    chunks = chunk_markdown_document("project-demo.md", text)
    assert len(chunks) == 1
    merged = chunks[0]
    assert merged.heading == "## Intro"
    assert merged.content.startswith("## Intro\n\nintro")
    assert "## Body\n\nbody" in merged.content
    assert merged.word_count == count_words(merged.content)


def test_small_last_section_stays_alone() -> None:
    text = "## Main\n" + _words(100, "main") + "\n## Outro\n" + _words(5, "bye")
    chunks = chunk_markdown_document("notes.md", text)
    assert [chunk.heading for chunk in chunks] == ["## Main", "## Outro"]


def test_large_section_splits_at_paragraphs_and_repeats_heading() -> None:
    paragraphs = [_words(250, f"p{i}") for i in range(4)]
    text = "## Projects\n" + "\n\n".join(paragraphs)
    chunks = chunk_markdown_document("project-list.md", text, max_words=600)

    assert len(chunks) == 2
    for chunk in chunks:
        assert chunk.heading == "## Projects"
        assert chunk.content.startswith("## Projects\n\n")
        assert chunk.word_count <= 600
    assert "p0" in chunks[0].content and "p1" in chunks[0].content
    assert "p2" in chunks[1].content and "p3" in chunks[1].content
    assert [chunk.chunk_index for chunk in chunks] == [0, 1]
