from __future__ import annotations

"""Embedding providers with internal batching."""

import hashlib
import math
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, Sequence

import httpx

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class EmbeddingUnavailable(RuntimeError):
    """Raised when the embedding provider fails or returns invalid vectors."""
    pass


class EmbeddingConfigError(RuntimeError):
    """Raised when embedding configuration is invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int
    model_id: str

    def embed(self, text: str) -> list[float]:
        """Return an embedding vector for the provided text."""
        raise NotImplementedError

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""
        raise NotImplementedError

    async def aembed(self, text: str) -> list[float]:
        """Embed a query without blocking the event loop; cancellable."""
        raise NotImplementedError


def validate_vector(vector: Sequence[float], dimension: int) -> list[float]:
    """Validate embedding vectors against the configured dimension."""
    if len(vector) != dimension:
        raise EmbeddingUnavailable(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    cleaned: list[float] = []
    for value in vector:
        if not isinstance(value, (int, float)):
            raise EmbeddingUnavailable("Embedding contains a non-numeric value")
        if not math.isfinite(value):
            raise EmbeddingUnavailable("Embedding contains a non-finite value")
        cleaned.append(float(value))
    return cleaned


def embed_in_batches(
    texts: Sequence[str],
    batch_size: int,
    embed_batch: Callable[[list[str]], list[list[float]]],
) -> list[list[float]]:
    """Run embed_batch over slices of at most batch_size texts."""
    size = max(1, batch_size)
    vectors: list[list[float]] = []
    for start in range(0, len(texts), size):
        batch = list(texts[start:start + size])
        result = embed_batch(batch)
        if len(result) != len(batch):
            raise EmbeddingUnavailable(
                f"Embedding count mismatch: sent {len(batch)}, got {len(result)}"
            )
        vectors.extend(result)
    return vectors


@dataclass
class HashEmbedder:
    """Deterministic hash-based embedder for testing or offline use."""
    dimension: int = 256
    batch_size: int = 8
    model_id: str = "hash-v1"

    def embed(self, text: str) -> list[float]:
        """Embed text using token hashing and L2 normalization."""
        tokens = _TOKEN_RE.findall(text.lower())
        if not tokens:
            return validate_vector([0.0] * self.dimension, self.dimension)
        vector = [0.0] * self.dimension
        for token in tokens:
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            idx = int.from_bytes(digest[:4], "big") % self.dimension
            vector[idx] += 1.0
        return validate_vector(self._l2_normalize(vector), self.dimension)

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return embed_in_batches(
            texts, self.batch_size, lambda batch: [self.embed(text) for text in batch]
        )

    async def aembed(self, text: str) -> list[float]:
        return self.embed(text)

    def _l2_normalize(self, vector: list[float]) -> list[float]:
        """Normalize vector magnitude to 1.0."""
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


@dataclass
class HTTPEmbedder:
    """Embedding provider for OpenAI-compatible /embeddings endpoints.

    Works against hosted APIs as well as a local embedding server serving a
    sentence-transformers model such as ``all-MiniLM-L6-v2``. Ingestion uses
    the blocking client; queries go through :meth:`aembed`, whose request is
    cancelled together with the awaiting task.
    """
    base_url: str
    model_id: str
    dimension: int
    api_key: str | None = None
    batch_size: int = 8
    timeout: float = 30.0
    transport: httpx.BaseTransport | None = field(default=None, repr=False)
    async_transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise EmbeddingConfigError("EMBEDDING_BASE_URL is required for HTTPEmbedder")
        if self.dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be greater than zero")
        self.base_url = self.base_url.rstrip("/")

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            return embed_in_batches(
                texts,
                self.batch_size,
                lambda batch: self._request(client, batch),
            )

    async def aembed(self, text: str) -> list[float]:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.async_transport
            ) as client:
                response = await client.post(
                    f"{self.base_url}/embeddings",
                    json={"model": self.model_id, "input": [text]},
                    headers=self._headers(),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailable(str(exc)) from exc
        except ValueError as exc:
            raise EmbeddingUnavailable("Embedding response is not valid JSON") from exc
        vectors = self._parse(data)
        if len(vectors) != 1:
            raise EmbeddingUnavailable(f"Embedding count mismatch: sent 1, got {len(vectors)}")
        return vectors[0]

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    def _request(self, client: httpx.Client, batch: list[str]) -> list[list[float]]:
        try:
            response = client.post(
                f"{self.base_url}/embeddings",
                json={"model": self.model_id, "input": batch},
                headers=self._headers(),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise EmbeddingUnavailable(str(exc)) from exc
        except ValueError as exc:
            raise EmbeddingUnavailable("Embedding response is not valid JSON") from exc
        return self._parse(data)

    def _parse(self, data: object) -> list[list[float]]:
        items = data.get("data") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise EmbeddingUnavailable("Embedding response missing data")
        for item in items:
            if not isinstance(item, dict) or not isinstance(item.get("embedding"), list):
                raise EmbeddingUnavailable("Embedding response item missing embedding")
            if not isinstance(item.get("index", 0), int):
                raise EmbeddingUnavailable("Embedding response item has a non-integer index")
        ordered = sorted(items, key=lambda item: item.get("index", 0))
        return [validate_vector(item["embedding"], self.dimension) for item in ordered]


@dataclass
class OpenAIEmbedder:
    """Embedding provider using OpenAI embeddings API."""
    api_key: str
    model_id: str
    dimension: int
    batch_size: int = 64
    client: Any = field(init=False, repr=False)
    async_client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate OpenAI configuration and create clients."""
        if not self.api_key:
            raise EmbeddingConfigError("OPENAI_API_KEY is required for OpenAIEmbedder")
        if not self.model_id:
            raise EmbeddingConfigError("EMBEDDING_MODEL is required for OpenAIEmbedder")
        if self.dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be greater than zero")
        try:
            from openai import AsyncOpenAI, OpenAI
        except ImportError as exc:
            raise EmbeddingConfigError("openai package is required for OpenAIEmbedder") from exc
        self.client = OpenAI(api_key=self.api_key)
        self.async_client = AsyncOpenAI(api_key=self.api_key)

    def embed(self, text: str) -> list[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        return embed_in_batches(texts, self.batch_size, self._request)

    async def aembed(self, text: str) -> list[float]:
        try:
            response = await self.async_client.embeddings.create(model=self.model_id, input=[text])
        except Exception as exc:
            raise EmbeddingUnavailable(str(exc)) from exc
        if len(response.data) != 1:
            raise EmbeddingUnavailable(f"Embedding count mismatch: sent 1, got {len(response.data)}")
        return validate_vector(list(response.data[0].embedding), self.dimension)

    def _request(self, batch: list[str]) -> list[list[float]]:
        try:
            response = self.client.embeddings.create(model=self.model_id, input=batch)
        except Exception as exc:
            raise EmbeddingUnavailable(str(exc)) from exc
        return [validate_vector(list(item.embedding), self.dimension) for item in response.data]
