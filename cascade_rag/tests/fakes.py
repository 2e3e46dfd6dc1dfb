from __future__ import annotations

"""Scripted stand-ins for the generation and retrieval services."""

import asyncio
from typing import Sequence

from cascade_rag.rag.llm import GenerationUnavailable, Message
from cascade_rag.rag.retrieval import RetrievalUnavailable
from cascade_rag.rag.types import RetrievalResult


class FakeGenerator:
    """Scripted generator that records every call."""

    def __init__(self, reply: str | None = "Generated answer.", delay: float = 0.0) -> None:
        self.reply = reply
        self.delay = delay
        self.calls: list[tuple[str, list[Message], float]] = []

    async def generate(self, system_prompt: str, messages: Sequence[Message], deadline: float) -> str:
        self.calls.append((system_prompt, list(messages), deadline))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.reply is None:
            raise GenerationUnavailable("scripted failure")
        return self.reply


class FakeRetrieval:
    """Scripted retrieval backend."""

    def __init__(
        self,
        context: list[str] | None = None,
        answer: str | None = None,
        healthy: bool = True,
        retrieve_fails: bool = False,
        retrieve_delay: float = 0.0,
    ) -> None:
        self.context = context or []
        self.answer = answer
        self.healthy = healthy
        self.retrieve_fails = retrieve_fails
        self.retrieve_delay = retrieve_delay
        self.health_calls = 0
        self.retrieve_calls = 0

    async def health(self, timeout: float) -> None:
        self.health_calls += 1
        if not self.healthy:
            raise RetrievalUnavailable("scripted outage")

    async def retrieve(self, question: str, k: int, timeout: float) -> RetrievalResult:
        self.retrieve_calls += 1
        if self.retrieve_delay:
            await asyncio.sleep(self.retrieve_delay)
        if self.retrieve_fails:
            raise RetrievalUnavailable("scripted outage")
        return RetrievalResult(context=self.context[:k], answer=self.answer)

