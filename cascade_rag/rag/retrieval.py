from __future__ import annotations

"""Retrieval backends: in-process index or a remote retrieval service."""

from dataclasses import dataclass, field
import asyncio
from typing import Protocol

import httpx

from cascade_rag.rag.embeddings import EmbeddingUnavailable
from cascade_rag.rag.types import RetrievalResult, SearchResult
from cascade_rag.vectorstore.local import LocalVectorIndex


class RetrievalError(RuntimeError):
    """Base class for retrieval failures."""
    pass


class RetrievalUnavailable(RetrievalError):
    """Raised when the retrieval backend is down or answers with an error."""
    pass


class RetrievalTimeout(RetrievalError):
    """Raised when the retrieval backend does not answer in time."""
    pass


class RetrievalBackend(Protocol):
    async def health(self, timeout: float) -> None:
        """Return normally when live, raise RetrievalError otherwise."""
        raise NotImplementedError

    async def retrieve(self, question: str, k: int, timeout: float) -> RetrievalResult:
        raise NotImplementedError


def format_context(results: list[SearchResult]) -> list[str]:
    """Label each passage with its rank for the generation prompt."""
    return [
        f"Context #{idx}:\n{result.chunk.content}"
        for idx, result in enumerate(results, start=1)
    ]


@dataclass
class LocalRetrievalBackend:
    """Searches an index loaded in this process.

    The query is embedded on the event loop so a timeout cancels any pending
    embedding request; only the numpy search runs in a worker thread.
    """
    index: LocalVectorIndex

    async def health(self, timeout: float) -> None:
        if self.index.embedder is None:
            raise RetrievalUnavailable("Index has no embedding provider")

    async def retrieve(self, question: str, k: int, timeout: float) -> RetrievalResult:
        try:
            results = await asyncio.wait_for(self._search(question, k), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RetrievalTimeout(f"Local search exceeded {timeout:.2f}s") from exc
        except EmbeddingUnavailable as exc:
            raise RetrievalUnavailable(str(exc)) from exc
        return RetrievalResult(context=format_context(results))

    async def _search(self, question: str, k: int) -> list[SearchResult]:
        embedder = self.index.embedder
        if embedder is None:
            raise RetrievalUnavailable("Index has no embedding provider")
        if k <= 0 or len(self.index) == 0:
            return []
        vector = await embedder.aembed(question)
        return await asyncio.to_thread(self.index.similarity_search_by_vector, vector, k)


@dataclass
class HTTPRetrievalBackend:
    """Client for a retrieval service exposing ``GET /health`` and ``POST /ask``."""
    base_url: str
    ask_path: str = "/ask"
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def health(self, timeout: float) -> None:
        data = await self._call("GET", "/health", None, timeout)
        if not isinstance(data, dict) or data.get("status") != "ok":
            raise RetrievalUnavailable("Retrieval health check did not report ok")

    async def retrieve(self, question: str, k: int, timeout: float) -> RetrievalResult:
        data = await self._call("POST", self.ask_path, {"question": question}, timeout)
        if not isinstance(data, dict):
            raise RetrievalUnavailable("Retrieval response is not a JSON object")
        raw_context = data.get("context") or []
        if isinstance(raw_context, str):
            raw_context = [raw_context]
        if not isinstance(raw_context, list):
            raise RetrievalUnavailable("Retrieval response context is not a list")
        context = [str(item) for item in raw_context if str(item).strip()][: max(k, 0)]
        answer = data.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            answer = None
        return RetrievalResult(context=context, answer=answer.strip() if answer else None)

    async def _call(
        self,
        method: str,
        path: str,
        payload: dict[str, str] | None,
        timeout: float,
    ) -> object:
        url = f"{self.base_url.rstrip('/')}{path}"
        try:
            return await asyncio.wait_for(self._send(method, url, payload, timeout), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RetrievalTimeout(f"{method} {path} exceeded {timeout:.2f}s") from exc

    async def _send(
        self,
        method: str,
        url: str,
        payload: dict[str, str] | None,
        timeout: float,
    ) -> object:
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=payload)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as exc:
            raise RetrievalTimeout(str(exc) or "Retrieval request timed out") from exc
        except httpx.HTTPError as exc:
            raise RetrievalUnavailable(str(exc)) from exc
        except ValueError as exc:
            raise RetrievalUnavailable("Retrieval response is not valid JSON") from exc
