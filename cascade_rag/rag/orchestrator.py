from __future__ import annotations

"""Time-budgeted answer cascade.

Tiers run in a fixed order and never backtrack::

    static match -> health probe -> retrieve -> decide
        -> grounded generation | ungrounded generation -> fixed sentence

Each tier either produces the final :class:`CascadeResponse` or names the
next tier. Every external call gets its own timeout, capped by what is left
of the cumulative budget, so a slow dependency cannot eat a later tier's time.
"""

from dataclasses import dataclass
from enum import Enum
import asyncio
import logging
import time
from typing import Awaitable, Callable, Union

from cascade_rag.loaders.chunking import normalize_question
from cascade_rag.rag.llm import GenerationError, Generator, Message
from cascade_rag.rag.persona import Persona
from cascade_rag.rag.retrieval import RetrievalBackend, RetrievalError
from cascade_rag.rag.types import CascadeResponse, QueryContext, Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeTimeouts:
    """Per-tier timeouts in seconds plus the cumulative cap."""
    health: float = 1.0
    retrieve: float = 4.0
    grounded: float = 4.0
    ungrounded: float = 3.0
    total: float = 9.5


class _Step(str, Enum):
    STATIC_MATCH = "static_match"
    HEALTH_PROBE = "health_probe"
    RETRIEVE = "retrieve"
    DECIDE = "decide"
    GENERATE_GROUNDED = "generate_grounded"
    GENERATE_FAQ = "generate_faq"
    GENERATE_NO_CONTEXT = "generate_no_context"


_Outcome = Union[CascadeResponse, _Step]


class QueryOrchestrator:
    """Answers one question per call; safe to share across concurrent requests."""

    def __init__(
        self,
        generator: Generator,
        persona: Persona | None = None,
        retrieval: RetrievalBackend | None = None,
        timeouts: CascadeTimeouts | None = None,
        top_k: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.generator = generator
        self.persona = persona or Persona()
        self.retrieval = retrieval
        self.timeouts = timeouts or CascadeTimeouts()
        self.top_k = top_k
        self._clock = clock
        self._canned = self.persona.canned_replies()
        self._faq = self.persona.faq_context()
        self._tiers: dict[_Step, Callable[[QueryContext], Awaitable[_Outcome]]] = {
            _Step.STATIC_MATCH: self._static_match,
            _Step.HEALTH_PROBE: self._health_probe,
            _Step.RETRIEVE: self._retrieve,
            _Step.DECIDE: self._decide,
            _Step.GENERATE_GROUNDED: self._generate_grounded,
            _Step.GENERATE_FAQ: self._generate_with_faq,
            _Step.GENERATE_NO_CONTEXT: self._generate_without_context,
        }

    @property
    def retrieval_configured(self) -> bool:
        return self.retrieval is not None

    async def answer(self, question: str) -> CascadeResponse:
        """Run the cascade. Never raises; the worst case is the high-traffic sentence."""
        started = self._clock()
        ctx = QueryContext(
            question=question.strip(),
            normalized_question=normalize_question(question),
            deadline_at=started + self.timeouts.total,
        )
        try:
            response = await self._run(ctx)
        except Exception:
            logger.exception("cascade_unexpected_error")
            response = CascadeResponse(
                reply=self.persona.high_traffic, context=[], source=Tier.RULE_FALLBACK
            )
        ctx.tier = response.source
        logger.info(
            "cascade_completed",
            extra={
                "tier": response.source.value,
                "context_items": len(response.context),
                "reply_length": len(response.reply),
                "elapsed": round(self._clock() - started, 3),
            },
        )
        return response

    async def _run(self, ctx: QueryContext) -> CascadeResponse:
        if not ctx.normalized_question:
            return CascadeResponse(
                reply=self.persona.empty_question, context=[], source=Tier.RULE_BASED
            )
        outcome: _Outcome = _Step.STATIC_MATCH
        while isinstance(outcome, _Step):
            outcome = await self._tiers[outcome](ctx)
        return outcome

    def _budget(self, ctx: QueryContext, tier_timeout: float) -> float:
        return max(0.0, min(tier_timeout, ctx.deadline_at - self._clock()))

    async def _static_match(self, ctx: QueryContext) -> _Outcome:
        reply = self._canned.get(ctx.normalized_question)
        if reply is None:
            return _Step.HEALTH_PROBE
        if not self.retrieval_configured:
            # Degraded backend: let the model introduce itself instead.
            return _Step.GENERATE_NO_CONTEXT
        return CascadeResponse(reply=reply, context=[], source=Tier.RULE_BASED)

    async def _health_probe(self, ctx: QueryContext) -> _Outcome:
        if self.retrieval is None:
            return _Step.GENERATE_FAQ
        timeout = self._budget(ctx, self.timeouts.health)
        if timeout <= 0:
            return _Step.GENERATE_FAQ
        try:
            await asyncio.wait_for(self.retrieval.health(timeout), timeout=timeout)
        except (RetrievalError, asyncio.TimeoutError) as exc:
            self._log_failure(_Step.HEALTH_PROBE, exc)
            return _Step.GENERATE_FAQ
        return _Step.RETRIEVE

    async def _retrieve(self, ctx: QueryContext) -> _Outcome:
        if self.retrieval is None:
            return _Step.GENERATE_NO_CONTEXT
        timeout = self._budget(ctx, self.timeouts.retrieve)
        if timeout <= 0:
            return _Step.GENERATE_NO_CONTEXT
        try:
            result = await asyncio.wait_for(
                self.retrieval.retrieve(ctx.question, self.top_k, timeout),
                timeout=timeout,
            )
        except (RetrievalError, asyncio.TimeoutError) as exc:
            self._log_failure(_Step.RETRIEVE, exc)
            return _Step.GENERATE_NO_CONTEXT
        ctx.retrieved_chunks = list(result.context)
        ctx.direct_answer = result.answer
        return _Step.DECIDE

    async def _decide(self, ctx: QueryContext) -> _Outcome:
        if ctx.direct_answer:
            return CascadeResponse(
                reply=ctx.direct_answer, context=list(ctx.retrieved_chunks), source=Tier.RAG
            )
        if ctx.retrieved_chunks:
            return _Step.GENERATE_GROUNDED
        return _Step.GENERATE_FAQ

    async def _generate_grounded(self, ctx: QueryContext) -> _Outcome:
        messages: list[Message] = [
            ("user", f"Retrieved context: {' '.join(ctx.retrieved_chunks)}"),
            ("user", ctx.question),
        ]
        reply = await self._generate(
            ctx, _Step.GENERATE_GROUNDED, self.persona.grounded_prompt(), messages,
            self.timeouts.grounded,
        )
        if reply is None:
            return CascadeResponse(
                reply=self.persona.no_official_info,
                context=list(ctx.retrieved_chunks),
                source=Tier.RAG_LLM_FALLBACK,
            )
        return CascadeResponse(reply=reply, context=list(ctx.retrieved_chunks), source=Tier.RAG_LLM)

    async def _generate_with_faq(self, ctx: QueryContext) -> _Outcome:
        messages: list[Message] = [
            ("user", f"Official information: {' '.join(self._faq)}"),
            ("user", ctx.question),
        ]
        reply = await self._generate(
            ctx, _Step.GENERATE_FAQ, self.persona.faq_prompt(), messages,
            self.timeouts.ungrounded,
        )
        if reply is None:
            return self._high_traffic()
        return CascadeResponse(reply=reply, context=list(self._faq), source=Tier.LLM_FALLBACK)

    async def _generate_without_context(self, ctx: QueryContext) -> _Outcome:
        reply = await self._generate(
            ctx, _Step.GENERATE_NO_CONTEXT, self.persona.no_context_prompt(),
            [("user", ctx.question)], self.timeouts.ungrounded,
        )
        if reply is None:
            return self._high_traffic()
        return CascadeResponse(reply=reply, context=[], source=Tier.LLM_FALLBACK)

    async def _generate(
        self,
        ctx: QueryContext,
        step: _Step,
        system_prompt: str,
        messages: list[Message],
        tier_timeout: float,
    ) -> str | None:
        timeout = self._budget(ctx, tier_timeout)
        if timeout <= 0:
            logger.warning("cascade_budget_exhausted", extra={"tier": step.value})
            return None
        try:
            reply = await asyncio.wait_for(
                self.generator.generate(system_prompt, messages, timeout),
                timeout=timeout,
            )
        except (GenerationError, asyncio.TimeoutError) as exc:
            self._log_failure(step, exc)
            return None
        reply = reply.strip() if isinstance(reply, str) else ""
        return reply or None

    def _high_traffic(self) -> CascadeResponse:
        return CascadeResponse(reply=self.persona.high_traffic, context=[], source=Tier.RULE_FALLBACK)

    def _log_failure(self, step: _Step, exc: BaseException) -> None:
        logger.warning(
            "cascade_tier_failed",
            extra={"tier": step.value, "error": type(exc).__name__, "detail": str(exc)},
        )
