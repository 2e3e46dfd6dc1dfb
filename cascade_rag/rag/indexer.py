from __future__ import annotations

"""Corpus indexing: load, split, normalize, embed in batches, persist."""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Sequence

import httpx

from cascade_rag.loaders.chunking import StructuralSplitter, normalize_text
from cascade_rag.loaders.sources import load_sources
from cascade_rag.rag.embeddings import EmbeddingProvider
from cascade_rag.rag.types import Chunk
from cascade_rag.vectorstore.local import LocalVectorIndex

logger = logging.getLogger(__name__)


class NoDocumentsLoaded(RuntimeError):
    """Raised when none of the configured sources produced a document."""
    pass


@dataclass(frozen=True)
class IngestionReport:
    sources: int
    documents: int
    chunks: int
    batches: int
    index_path: str


@dataclass
class CorpusIndexer:
    """Builds a fresh persisted index from a list of sources.

    The index is written only after every batch has been embedded, so a
    failed build never replaces or leaves behind a partial index.
    """
    sources: Sequence[str]
    embedder: EmbeddingProvider
    index_path: str | Path
    splitter: StructuralSplitter = field(default_factory=StructuralSplitter)
    batch_size: int = 50
    web_timeout: float = 15.0
    client: httpx.Client | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("batch_size must be greater than zero")

    def build(self) -> IngestionReport:
        documents = load_sources(self.sources, web_timeout=self.web_timeout, client=self.client)
        if not documents:
            raise NoDocumentsLoaded(
                f"No documents loaded from {len(self.sources)} configured source(s)"
            )
        logger.info(
            "documents_loaded",
            extra={"sources": len(self.sources), "documents": len(documents)},
        )

        chunks = self._prepare_chunks(self.splitter.split_documents(documents))
        logger.info("chunks_created", extra={"chunks": len(chunks)})

        index = LocalVectorIndex(dimension=self.embedder.dimension, embedder=self.embedder)
        batches = 0
        for start in range(0, len(chunks), self.batch_size):
            batch = chunks[start:start + self.batch_size]
            index.add_entries(batch)
            batches += 1
            logger.info(
                "batch_indexed",
                extra={
                    "batch": batches,
                    "indexed": len(index),
                    "total": len(chunks),
                },
            )

        target = index.save(self.index_path)
        report = IngestionReport(
            sources=len(self.sources),
            documents=len(documents),
            chunks=len(chunks),
            batches=batches,
            index_path=str(target),
        )
        logger.info("ingestion_completed", extra=asdict(report))
        return report

    def _prepare_chunks(self, chunks: list[Chunk]) -> list[Chunk]:
        prepared: list[Chunk] = []
        for chunk in chunks:
            content = normalize_text(chunk.content)
            if not content:
                continue
            prepared.append(Chunk(content=content, metadata=chunk.metadata))
        return prepared
