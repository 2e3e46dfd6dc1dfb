from __future__ import annotations

"""Persisted vector index behavior tests."""

import json

import pytest

from cascade_rag.rag.embeddings import EmbeddingUnavailable, HashEmbedder
from cascade_rag.rag.types import Chunk
from cascade_rag.vectorstore.local import (
    MANIFEST_FILE,
    EmbeddingModelMismatch,
    IndexNotFound,
    LocalVectorIndex,
)


def build_index(embedder: HashEmbedder | None = None) -> LocalVectorIndex:
    embedder = embedder or HashEmbedder(dimension=64)
    index = LocalVectorIndex(dimension=embedder.dimension, embedder=embedder)
    index.add_entries(
        [
            Chunk(content="Warranty covers spare parts for two years.", metadata={"source": "warranty"}),
            Chunk(content="Branches are located in Nairobi and Mombasa.", metadata={"source": "branches"}),
            Chunk(content="The board of directors meets quarterly.", metadata={"source": "governance"}),
        ]
    )
    return index


class FailingEmbedder(HashEmbedder):
    def embed_many(self, texts):
        raise EmbeddingUnavailable("provider down")


def test_search_returns_nearest_first() -> None:
    index = build_index()

    results = index.similarity_search("What does the warranty cover for spare parts?", k=2)

    assert len(results) == 2
    assert results[0].chunk.metadata["source"] == "warranty"
    assert results[0].distance <= results[1].distance


def test_search_returns_at_most_index_size() -> None:
    index = build_index()

    assert len(index.similarity_search("branches", k=10)) == 3
    assert index.similarity_search("branches", k=0) == []
    assert index.similarity_search("branches", k=-1) == []


def test_empty_index_returns_no_results() -> None:
    embedder = HashEmbedder(dimension=16)
    index = LocalVectorIndex(dimension=16, embedder=embedder)

    assert len(index) == 0
    assert index.similarity_search("anything", k=3) == []


def test_identical_text_has_zero_distance() -> None:
    index = build_index()

    results = index.similarity_search("The board of directors meets quarterly.", k=1)

    assert results[0].chunk.metadata["source"] == "governance"
    assert results[0].distance == pytest.approx(0.0, abs=1e-5)


def test_failed_batch_leaves_index_unchanged() -> None:
    index = build_index()

    with pytest.raises(EmbeddingUnavailable):
        index.add_entries([Chunk(content="new entry")], embedder=FailingEmbedder(dimension=64))

    assert len(index) == 3


def test_save_and_load(tmp_path) -> None:
    embedder = HashEmbedder(dimension=64)
    index = build_index(embedder)
    index.save(tmp_path / "store")

    manifest = json.loads((tmp_path / "store" / MANIFEST_FILE).read_text(encoding="utf-8"))
    loaded = LocalVectorIndex.load(tmp_path / "store", embedder)

    assert manifest["count"] == 3
    assert manifest["embedding_model"] == "hash-v1"
    assert len(loaded) == 3
    assert loaded.chunks == index.chunks
    assert loaded.similarity_search("spare parts warranty", k=1)[0].chunk.metadata["source"] == "warranty"


def test_load_missing_index_raises(tmp_path) -> None:
    with pytest.raises(IndexNotFound):
        LocalVectorIndex.load(tmp_path / "absent", HashEmbedder(dimension=64))


def test_load_with_other_model_raises(tmp_path) -> None:
    build_index().save(tmp_path)

    with pytest.raises(EmbeddingModelMismatch):
        LocalVectorIndex.load(tmp_path, HashEmbedder(dimension=64, model_id="other-model"))
    with pytest.raises(EmbeddingModelMismatch):
        LocalVectorIndex.load(tmp_path, HashEmbedder(dimension=32))


def test_stats_and_close() -> None:
    index = build_index()

    assert index.stats() == {
        "backend": "local",
        "document_count": 3,
        "embedding_dimension": 64,
        "embedding_model": "hash-v1",
    }
    index.close()
    assert len(index) == 0


def test_failed_save_keeps_previous_index(tmp_path) -> None:
    embedder = HashEmbedder(dimension=64)
    build_index(embedder).save(tmp_path / "store")
    broken = LocalVectorIndex(dimension=64, embedder=embedder)
    broken.add_entries([Chunk(content="Unserializable metadata.", metadata={"handle": object()})])

    with pytest.raises(TypeError):
        broken.save(tmp_path / "store")

    loaded = LocalVectorIndex.load(tmp_path / "store", embedder)
    assert len(loaded) == 3
    assert sorted(path.name for path in (tmp_path / "store").iterdir()) == [
        "chunks.json",
        "index.json",
        "vectors.npy",
    ]


def test_save_replaces_previous_index(tmp_path) -> None:
    embedder = HashEmbedder(dimension=64)
    build_index(embedder).save(tmp_path / "store")
    smaller = LocalVectorIndex(dimension=64, embedder=embedder)
    smaller.add_entries([Chunk(content="Only entry.")])

    smaller.save(tmp_path / "store")

    loaded = LocalVectorIndex.load(tmp_path / "store", embedder)
    assert [chunk.content for chunk in loaded.chunks] == ["Only entry."]
