from __future__ import annotations

"""Chunking and normalization behavior tests."""

import pytest

from cascade_rag.loaders.chunking import (
    StructuralSplitter,
    chunk_text,
    normalize_question,
    normalize_text,
)
from cascade_rag.rag.types import Document


def test_chunks_never_exceed_chunk_size() -> None:
    text = ("Section 1. The board shall meet quarterly. " * 40) + ("x" * 900)
    splitter = StructuralSplitter(chunk_size=120, chunk_overlap=20)

    chunks = splitter.split_text(text)

    assert len(chunks) > 1
    assert all(0 < len(chunk) <= 120 for chunk in chunks)


def _tokens(count: int) -> list[str]:
    return [f"w{idx:04d}" for idx in range(count)]


def _sentences(count: int) -> str:
    return " ".join(f"{token}." for token in _tokens(count))


def _sections(count: int) -> str:
    tokens = _tokens(count * 12)
    return "".join(
        f"\nSection {idx + 1}. " + " ".join(f"{token}." for token in tokens[idx * 12:(idx + 1) * 12])
        for idx in range(count)
    )


def _paragraphs(count: int) -> str:
    tokens = _tokens(count * 20)
    return "\n\n".join(
        " ".join(f"{token}." for token in tokens[idx * 20:(idx + 1) * 20]) for idx in range(count)
    )


def _shared_length(first: str, second: str) -> int:
    return max(
        (size for size in range(1, min(len(first), len(second)) + 1) if first.endswith(second[:size])),
        default=0,
    )


CORPORA = {
    "sentences": _sentences(200),
    "sections": _sections(15),
    "no_separators": " ".join(_tokens(300)),
    "paragraphs": _paragraphs(12),
}


@pytest.mark.parametrize("corpus", sorted(CORPORA))
@pytest.mark.parametrize(("size", "overlap"), [(60, 10), (120, 20), (200, 50), (350, 100), (700, 100)])
def test_chunk_length_and_overlap_bounds(corpus: str, size: int, overlap: int) -> None:
    text = CORPORA[corpus]
    splitter = StructuralSplitter(chunk_size=size, chunk_overlap=overlap)

    chunks = splitter.split_text(text)

    assert chunks
    assert all(0 < len(chunk) <= size for chunk in chunks)
    assert all(_shared_length(a, b) <= overlap for a, b in zip(chunks, chunks[1:]))
    joined = "\n".join(chunks)
    assert all(token.rstrip(".") in joined for token in text.split() if token.startswith("w"))


def test_consecutive_chunks_share_bounded_overlap() -> None:
    """Pieces carried into the next chunk fit within the overlap."""
    text = (
        "Alpha one. Bravo two. Charlie three. Delta four. "
        "Echo five. Foxtrot six. Golf seven."
    )
    splitter = StructuralSplitter(chunk_size=50, chunk_overlap=20, separators=[". "])

    chunks = splitter.split_text(text)

    assert chunks == [
        "Alpha one. Bravo two. Charlie three. Delta four",
        ". Delta four. Echo five. Foxtrot six. Golf seven.",
    ]
    shared = ". Delta four"
    assert chunks[0].endswith(shared)
    assert chunks[1].startswith(shared)
    assert len(shared) <= 20


def test_short_document_yields_single_chunk() -> None:
    splitter = StructuralSplitter()
    document = Document(content="  Section 1. Short Act.  ", metadata={"source": "Short Act"})

    chunks = splitter.split_documents([document])

    assert len(chunks) == 1
    assert chunks[0].content == "Section 1. Short Act."
    assert chunks[0].metadata == {"source": "Short Act", "chunk_index": 1, "chunk_count": 1}


def test_section_markers_win_over_sentence_breaks() -> None:
    text = (
        "Intro text here."
        "\nSection 1. Alpha rules apply. More words."
        "\nSection 2. Beta rules apply. More words."
    )
    splitter = StructuralSplitter(chunk_size=60, chunk_overlap=0)

    chunks = splitter.split_text(text)

    assert chunks == [
        "Intro text here.\nSection 1. Alpha rules apply. More words.",
        "Section 2. Beta rules apply. More words.",
    ]


def test_text_without_separators_falls_back_to_windows() -> None:
    splitter = StructuralSplitter(chunk_size=100, chunk_overlap=10)

    chunks = splitter.split_text("x" * 250)

    assert [len(chunk) for chunk in chunks] == [100, 100, 70]


def test_split_documents_copies_metadata_per_chunk() -> None:
    document = Document(content="word " * 300, metadata={"source": "policy", "page": 2})
    splitter = StructuralSplitter(chunk_size=200, chunk_overlap=20)

    chunks = splitter.split_documents([document])

    assert len(chunks) > 1
    assert [chunk.metadata["chunk_index"] for chunk in chunks] == list(range(1, len(chunks) + 1))
    assert all(chunk.metadata["chunk_count"] == len(chunks) for chunk in chunks)
    assert all(chunk.metadata["page"] == 2 for chunk in chunks)
    assert "chunk_index" not in document.metadata


@pytest.mark.parametrize(("size", "overlap"), [(100, 100), (100, 150), (0, 0), (100, -1)])
def test_invalid_splitter_configuration_is_rejected(size: int, overlap: int) -> None:
    with pytest.raises(ValueError):
        StructuralSplitter(chunk_size=size, chunk_overlap=overlap)


def test_chunk_text_windows_overlap() -> None:
    assert chunk_text("abcdefghij", max_chars=4, overlap=1) == ["abcd", "defg", "ghij"]
    assert chunk_text("", max_chars=4, overlap=1) == []


def test_normalize_text_removes_page_markers_and_whitespace() -> None:
    raw = "Section 1  text\n\nPage 3 of 10\n more   words  "

    assert normalize_text(raw) == "Section 1 text more words"
    assert normalize_text("PAGE 2 OF 9") == ""


@pytest.mark.parametrize(
    "raw",
    [
        "Section 1  text\n\nPage 3 of 10\n more",
        "PaPage 1 of 2ge 3 of 4",
        "Page   7  of  8 trailing",
        "already clean",
        "   ",
    ],
)
def test_normalize_text_is_idempotent(raw: str) -> None:
    once = normalize_text(raw)

    assert normalize_text(once) == once


def test_normalize_question() -> None:
    assert normalize_question("  Hello!! ") == "hello"
    assert normalize_question("Who are   YOU?") == "who are you"
    assert normalize_question("What's up?") == "what s up"
    assert normalize_question("???") == ""
