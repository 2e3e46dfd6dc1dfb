from __future__ import annotations

"""Text normalization and structure-aware chunking."""

import re
from dataclasses import dataclass, field
from typing import Iterable

from cascade_rag.rag.types import Chunk, Document

DEFAULT_SEPARATORS = ["\nSection ", "\nPART ", "\nCHAPTER ", "\n\n", ". "]

_PAGE_MARKER_RE = re.compile(r"Page\s+\d+\s+of\s+\d+", flags=re.IGNORECASE)
_WHITESPACE_RUN_RE = re.compile(r"\s{2,}")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Strip "Page N of M" artifacts, collapse whitespace runs and trim.

    Rules are applied until the text stops changing, so the result is a
    fixpoint and normalizing it again is a no-op.
    """
    current = text
    while True:
        cleaned = _PAGE_MARKER_RE.sub("", current)
        cleaned = _WHITESPACE_RUN_RE.sub(" ", cleaned).strip()
        if cleaned == current:
            return cleaned
        current = cleaned


def normalize_question(text: str) -> str:
    """Lowercase, replace non-alphanumerics with spaces and collapse whitespace."""
    lowered = _NON_ALNUM_RE.sub(" ", text.lower())
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def chunk_text(text: str, max_chars: int, overlap: int) -> list[str]:
    """Split text into overlapping fixed-size character windows."""
    if not text:
        return []
    if max_chars <= 0:
        return [text]
    if overlap >= max_chars:
        overlap = max(0, max_chars // 4)
    chunks: list[str] = []
    start = 0
    length = len(text)
    while start < length:
        end = min(length, start + max_chars)
        chunks.append(text[start:end])
        if end >= length:
            break
        start = max(0, end - overlap)
    return chunks


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split before each separator occurrence, keeping it on the following piece."""
    pieces = re.split(f"(?={re.escape(separator)})", text)
    return [piece for piece in pieces if piece]


@dataclass
class StructuralSplitter:
    """Recursive splitter that prefers structural markers over punctuation."""
    chunk_size: int = 700
    chunk_overlap: int = 100
    separators: list[str] = field(default_factory=lambda: list(DEFAULT_SEPARATORS))

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be greater than zero")
        if self.chunk_overlap < 0:
            raise ValueError("chunk_overlap must not be negative")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )

    def split_text(self, text: str) -> list[str]:
        """Split text into chunks no longer than chunk_size."""
        return self._split(text, self.separators)

    def split_documents(self, documents: Iterable[Document]) -> list[Chunk]:
        """Split each document, copying its metadata onto every chunk."""
        chunks: list[Chunk] = []
        for document in documents:
            pieces = self.split_text(document.content)
            total = len(pieces)
            for idx, piece in enumerate(pieces, start=1):
                metadata = dict(document.metadata)
                metadata.update({"chunk_index": idx, "chunk_count": total})
                chunks.append(Chunk(content=piece, metadata=metadata))
        return chunks

    def _split(self, text: str, separators: list[str]) -> list[str]:
        separator: str | None = None
        remaining: list[str] = []
        for idx, candidate in enumerate(separators):
            if candidate and candidate in text:
                separator = candidate
                remaining = separators[idx + 1:]
                break
        if separator is None:
            return self._window(text)

        final: list[str] = []
        pending: list[str] = []
        for piece in _split_keeping_separator(text, separator):
            if len(piece) < self.chunk_size:
                pending.append(piece)
                continue
            if pending:
                final.extend(self._merge(pending))
                pending = []
            if remaining:
                final.extend(self._split(piece, remaining))
            else:
                final.extend(self._window(piece))
        if pending:
            final.extend(self._merge(pending))
        return final

    def _window(self, text: str) -> list[str]:
        """Last resort once every separator is exhausted."""
        pieces = [piece.strip() for piece in chunk_text(text, self.chunk_size, self.chunk_overlap)]
        return [piece for piece in pieces if piece]

    def _merge(self, pieces: list[str]) -> list[str]:
        """Greedily merge small pieces, carrying up to chunk_overlap chars forward."""
        merged: list[str] = []
        current: list[str] = []
        total = 0
        for piece in pieces:
            length = len(piece)
            if total + length > self.chunk_size and current:
                chunk = "".join(current).strip()
                if chunk:
                    merged.append(chunk)
                while total > self.chunk_overlap or (
                    total + length > self.chunk_size and total > 0
                ):
                    total -= len(current[0])
                    current.pop(0)
            current.append(piece)
            total += length
        chunk = "".join(current).strip()
        if chunk:
            merged.append(chunk)
        return merged
