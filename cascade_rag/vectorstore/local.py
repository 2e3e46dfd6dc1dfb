from __future__ import annotations

"""Persisted flat vector index with exact cosine-distance search."""

import json
import logging
import os
from dataclasses import asdict
from pathlib import Path
from typing import Sequence

import numpy as np

from cascade_rag.rag.embeddings import EmbeddingProvider, EmbeddingUnavailable
from cascade_rag.rag.types import Chunk, SearchResult

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
MANIFEST_FILE = "index.json"
VECTORS_FILE = "vectors.npy"
CHUNKS_FILE = "chunks.json"


class IndexNotFound(RuntimeError):
    """Raised when no persisted index exists at the requested path."""
    pass


class EmbeddingModelMismatch(RuntimeError):
    """Raised when an index was built with a different embedding model."""
    pass


def _unit_rows(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0.0] = 1.0
    return vectors / norms


class LocalVectorIndex:
    """Exact nearest-neighbour index over L2-normalized vectors.

    Rows are stored normalized, so cosine distance is ``1 - dot``. A zero
    vector has distance 1.0 to everything.
    """

    def __init__(
        self,
        dimension: int,
        embedder: EmbeddingProvider | None = None,
        model_id: str | None = None,
    ) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be greater than zero")
        self.dimension = dimension
        self.embedder = embedder
        self.model_id = model_id or (embedder.model_id if embedder is not None else "")
        self._vectors = np.zeros((0, dimension), dtype=np.float32)
        self._chunks: list[Chunk] = []

    def __len__(self) -> int:
        return len(self._chunks)

    @property
    def chunks(self) -> list[Chunk]:
        return list(self._chunks)

    def add_entries(
        self,
        chunks: Sequence[Chunk],
        embedder: EmbeddingProvider | None = None,
    ) -> int:
        """Embed chunks and append them. Nothing is added if embedding fails."""
        if not chunks:
            return 0
        provider = embedder or self.embedder
        if provider is None:
            raise ValueError("An embedding provider is required to add entries")
        vectors = provider.embed_many([chunk.content for chunk in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingUnavailable(
                f"Embedding count mismatch: sent {len(chunks)}, got {len(vectors)}"
            )
        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            raise EmbeddingUnavailable(
                f"Embedding dimension mismatch: index.d={self.dimension}, got shape {matrix.shape}"
            )
        self._vectors = np.vstack([self._vectors, _unit_rows(matrix)])
        self._chunks.extend(chunks)
        return len(chunks)

    def similarity_search(self, query: str, k: int = 4) -> list[SearchResult]:
        """Return up to k chunks nearest to the query, nearest first."""
        if k <= 0 or not self._chunks:
            return []
        if self.embedder is None:
            raise ValueError("An embedding provider is required to search by text")
        return self.similarity_search_by_vector(self.embedder.embed(query), k)

    def similarity_search_by_vector(self, vector: Sequence[float], k: int = 4) -> list[SearchResult]:
        if k <= 0 or not self._chunks:
            return []
        query = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if query.shape[1] != self.dimension:
            raise EmbeddingUnavailable(
                f"Query dimension mismatch: index.d={self.dimension}, got {query.shape[1]}"
            )
        distances = 1.0 - (self._vectors @ _unit_rows(query)[0])
        limit = min(k, len(self._chunks))
        order = np.argsort(distances, kind="stable")[:limit]
        return [
            SearchResult(chunk=self._chunks[idx], distance=float(distances[idx]))
            for idx in order.tolist()
        ]

    def save(self, path: str | Path) -> Path:
        """Persist the index as manifest, vectors and chunk store.

        Files are staged under temporary names first. The old manifest is
        removed before the staged files move into place and the new manifest
        moves in last, so the directory is never a complete index that mixes
        two builds.
        """
        target = Path(path)
        target.mkdir(parents=True, exist_ok=True)
        manifest = {
            "format_version": FORMAT_VERSION,
            "dimension": self.dimension,
            "count": len(self._chunks),
            "embedding_model": self.model_id,
            "metric": "cosine",
        }
        staged = {name: target / f".{name}.tmp" for name in (VECTORS_FILE, CHUNKS_FILE, MANIFEST_FILE)}
        try:
            with open(staged[VECTORS_FILE], "wb") as f:
                np.save(f, self._vectors, allow_pickle=False)
            with open(staged[CHUNKS_FILE], "w", encoding="utf-8") as f:
                json.dump([asdict(chunk) for chunk in self._chunks], f, ensure_ascii=False)
            with open(staged[MANIFEST_FILE], "w", encoding="utf-8") as f:
                json.dump(manifest, f, indent=2)
        except Exception:
            for tmp in staged.values():
                tmp.unlink(missing_ok=True)
            raise
        (target / MANIFEST_FILE).unlink(missing_ok=True)
        os.replace(staged[VECTORS_FILE], target / VECTORS_FILE)
        os.replace(staged[CHUNKS_FILE], target / CHUNKS_FILE)
        os.replace(staged[MANIFEST_FILE], target / MANIFEST_FILE)
        logger.info(
            "index_saved",
            extra={"path": str(target), "count": len(self._chunks)},
        )
        return target

    @classmethod
    def load(cls, path: str | Path, embedder: EmbeddingProvider) -> "LocalVectorIndex":
        """Load a persisted index for read-only serving."""
        target = Path(path)
        manifest_path = target / MANIFEST_FILE
        if not manifest_path.is_file():
            raise IndexNotFound(f"No persisted index at {target}")
        with open(manifest_path, "r", encoding="utf-8") as f:
            manifest = json.load(f)
        model_id = str(manifest.get("embedding_model", ""))
        if model_id and model_id != embedder.model_id:
            raise EmbeddingModelMismatch(
                f"Index at {target} was built with {model_id!r}, provider is "
                f"{embedder.model_id!r}; rebuild the index."
            )
        dimension = int(manifest["dimension"])
        if dimension != embedder.dimension:
            raise EmbeddingModelMismatch(
                f"Index dimension {dimension} does not match provider dimension {embedder.dimension}"
            )
        try:
            vectors = np.load(target / VECTORS_FILE, allow_pickle=False)
            with open(target / CHUNKS_FILE, "r", encoding="utf-8") as f:
                raw_chunks = json.load(f)
        except FileNotFoundError as exc:
            raise IndexNotFound(f"Incomplete index at {target}: {exc}") from exc
        if len(raw_chunks) != vectors.shape[0]:
            raise IndexNotFound(
                f"Corrupt index at {target}: {vectors.shape[0]} vectors, {len(raw_chunks)} chunks"
            )
        index = cls(dimension=dimension, embedder=embedder, model_id=model_id)
        index._vectors = vectors.astype(np.float32, copy=False).reshape(-1, dimension)
        index._chunks = [
            Chunk(content=item["content"], metadata=item.get("metadata", {}))
            for item in raw_chunks
        ]
        logger.info(
            "index_loaded",
            extra={"path": str(target), "count": len(index._chunks)},
        )
        return index

    def close(self) -> None:
        self._vectors = np.zeros((0, self.dimension), dtype=np.float32)
        self._chunks = []

    def stats(self) -> dict[str, int | str]:
        return {
            "backend": "local",
            "document_count": len(self._chunks),
            "embedding_dimension": self.dimension,
            "embedding_model": self.model_id,
        }

    def health(self) -> dict[str, str | bool]:
        return {"backend": "local", "ok": self.embedder is not None}
