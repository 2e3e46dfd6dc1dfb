from __future__ import annotations

"""Core data types for documents, chunks, retrieval and cascade responses."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Document:
    """Ingested source unit with provenance metadata."""
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> str:
        return str(self.metadata.get("source", ""))


@dataclass(frozen=True)
class Chunk:
    """Bounded slice of a document prepared for embedding."""
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """Search result with cosine distance (lower is nearer)."""
    chunk: Chunk
    distance: float


@dataclass(frozen=True)
class RetrievalResult:
    """Retrieval outcome: context passages and an optional direct answer."""
    context: list[str]
    answer: str | None = None


class Tier(str, Enum):
    """Cascade stage that produced the final response."""
    RULE_BASED = "rule-based"
    RAG = "rag"
    RAG_LLM = "rag+llm"
    RAG_LLM_FALLBACK = "rag+llm-fallback"
    LLM_FALLBACK = "llm-fallback"
    RULE_FALLBACK = "rule-fallback"


@dataclass(frozen=True)
class CascadeResponse:
    """Terminal response of the query cascade."""
    reply: str
    context: list[str]
    source: Tier

    def as_dict(self) -> dict[str, Any]:
        return {"reply": self.reply, "context": list(self.context), "source": self.source.value}


@dataclass
class QueryContext:
    """Per-request state carried through the cascade."""
    question: str
    normalized_question: str
    retrieved_chunks: list[str] = field(default_factory=list)
    direct_answer: str | None = None
    tier: Tier | None = None
    deadline_at: float = 0.0
