from __future__ import annotations

"""Cascade scenarios: every path ends in a response with a tier tag."""

import asyncio

import pytest

from cascade_rag.rag.orchestrator import CascadeTimeouts, QueryOrchestrator
from cascade_rag.rag.persona import Persona
from cascade_rag.rag.types import Tier
from cascade_rag.tests.fakes import FakeGenerator, FakeRetrieval

pytestmark = pytest.mark.anyio

PERSONA = Persona()
WARRANTY_CONTEXT = [
    "Context #1:\nThe standard warranty runs for 12 months.",
    "Context #2:\nExtended warranty is available for generators.",
    "Context #3:\nWarranty claims are handled at service centres.",
]


def build(generator: FakeGenerator, retrieval: FakeRetrieval | None, **timeouts) -> QueryOrchestrator:
    return QueryOrchestrator(
        generator=generator,
        persona=PERSONA,
        retrieval=retrieval,
        timeouts=CascadeTimeouts(**timeouts),
        top_k=3,
    )


async def test_greeting_is_answered_from_rules() -> None:
    generator = FakeGenerator()
    retrieval = FakeRetrieval()

    response = await build(generator, retrieval).answer("Hello!")

    assert response.source is Tier.RULE_BASED
    assert response.reply == PERSONA.greetings["hello"]
    assert response.context == []
    assert generator.calls == []
    assert retrieval.health_calls == 0


async def test_grounded_answer_uses_retrieved_context() -> None:
    generator = FakeGenerator(reply="The warranty lasts 12 months.")
    retrieval = FakeRetrieval(context=WARRANTY_CONTEXT)

    response = await build(generator, retrieval).answer("What is the warranty on generators?")

    assert response.source is Tier.RAG_LLM
    assert response.reply == "The warranty lasts 12 months."
    assert len(response.context) == 3
    system_prompt, messages, _ = generator.calls[0]
    assert system_prompt == PERSONA.grounded_prompt()
    assert messages[0] == ("user", f"Retrieved context: {' '.join(WARRANTY_CONTEXT)}")
    assert messages[1] == ("user", "What is the warranty on generators?")


async def test_grounded_failure_keeps_context() -> None:
    retrieval = FakeRetrieval(context=WARRANTY_CONTEXT)

    response = await build(FakeGenerator(reply=None), retrieval).answer("What is the warranty on generators?")

    assert response.source is Tier.RAG_LLM_FALLBACK
    assert response.reply == PERSONA.no_official_info
    assert len(response.context) == 3


async def test_direct_answer_from_retrieval_skips_generation() -> None:
    generator = FakeGenerator()
    retrieval = FakeRetrieval(context=WARRANTY_CONTEXT[:1], answer="Twelve months.")

    response = await build(generator, retrieval).answer("Warranty length?")

    assert response.source is Tier.RAG
    assert response.reply == "Twelve months."
    assert response.context == WARRANTY_CONTEXT[:1]
    assert generator.calls == []


async def test_health_probe_failure_uses_faq_context() -> None:
    generator = FakeGenerator(reply="We sell generators.")
    retrieval = FakeRetrieval(healthy=False)

    response = await build(generator, retrieval).answer("What products do you sell?")

    assert response.source is Tier.LLM_FALLBACK
    assert response.context == PERSONA.faq_context()
    assert retrieval.retrieve_calls == 0
    system_prompt, messages, _ = generator.calls[0]
    assert system_prompt == PERSONA.faq_prompt()
    assert messages[0][1].startswith("Official information: ")


async def test_empty_retrieval_uses_faq_context() -> None:
    generator = FakeGenerator(reply="Please contact us.")

    response = await build(generator, FakeRetrieval(context=[])).answer("Unrelated question")

    assert response.source is Tier.LLM_FALLBACK
    assert response.context == PERSONA.faq_context()


async def test_retrieval_failure_answers_without_context() -> None:
    generator = FakeGenerator(reply="I can only help with our products.")
    retrieval = FakeRetrieval(retrieve_fails=True)

    response = await build(generator, retrieval).answer("What is the warranty?")

    assert response.source is Tier.LLM_FALLBACK
    assert response.context == []
    system_prompt, messages, _ = generator.calls[0]
    assert system_prompt == PERSONA.no_context_prompt()
    assert messages == [("user", "What is the warranty?")]


async def test_everything_down_returns_high_traffic_sentence() -> None:
    response = await build(FakeGenerator(reply=None), FakeRetrieval(healthy=False)).answer(
        "What is the warranty?"
    )

    assert response.source is Tier.RULE_FALLBACK
    assert response.reply == PERSONA.high_traffic
    assert response.context == []


async def test_hanging_dependencies_are_cut_by_their_timeouts() -> None:
    generator = FakeGenerator(delay=5)
    retrieval = FakeRetrieval(context=WARRANTY_CONTEXT, retrieve_delay=5)
    orchestrator = build(generator, retrieval, retrieve=0.05, ungrounded=0.05)

    loop = asyncio.get_running_loop()
    started = loop.time()
    response = await orchestrator.answer("What is the warranty?")

    assert response.source is Tier.RULE_FALLBACK
    assert loop.time() - started < 2.0


async def test_exhausted_budget_skips_remaining_calls() -> None:
    clock = {"now": 0.0}

    class SlowHealth(FakeRetrieval):
        async def health(self, timeout: float) -> None:
            clock["now"] += 5.0

    generator = FakeGenerator()
    retrieval = SlowHealth(context=WARRANTY_CONTEXT)
    orchestrator = QueryOrchestrator(
        generator=generator,
        persona=PERSONA,
        retrieval=retrieval,
        timeouts=CascadeTimeouts(total=3.0),
        clock=lambda: clock["now"],
    )

    response = await orchestrator.answer("What is the warranty?")

    assert response.source is Tier.RULE_FALLBACK
    assert retrieval.retrieve_calls == 0
    assert generator.calls == []


async def test_greeting_without_retrieval_goes_to_generation() -> None:
    generator = FakeGenerator(reply="Hello from the model.")

    response = await build(generator, None).answer("hello")

    assert response.source is Tier.LLM_FALLBACK
    assert response.reply == "Hello from the model."
    assert generator.calls[0][0] == PERSONA.no_context_prompt()


async def test_no_retrieval_configured_uses_faq_context() -> None:
    response = await build(FakeGenerator(reply="From the FAQ."), None).answer("Where are you?")

    assert response.source is Tier.LLM_FALLBACK
    assert response.context == PERSONA.faq_context()


async def test_blank_question_gets_prompt_to_ask() -> None:
    generator = FakeGenerator()

    response = await build(generator, FakeRetrieval()).answer("   ?! ")

    assert response.source is Tier.RULE_BASED
    assert response.reply == PERSONA.empty_question
    assert generator.calls == []


async def test_unexpected_error_still_returns_a_response() -> None:
    class BrokenGenerator(FakeGenerator):
        async def generate(self, system_prompt, messages, deadline):
            raise KeyError("bug")

    response = await build(BrokenGenerator(), FakeRetrieval(healthy=False)).answer("What is the warranty?")

    assert response.source is Tier.RULE_FALLBACK
    assert response.reply == PERSONA.high_traffic


async def test_concurrent_questions_do_not_share_state() -> None:
    orchestrator = build(FakeGenerator(reply="ok"), FakeRetrieval(context=WARRANTY_CONTEXT))

    responses = await asyncio.gather(
        orchestrator.answer("hello"),
        orchestrator.answer("What is the warranty?"),
    )

    assert [response.source for response in responses] == [Tier.RULE_BASED, Tier.RAG_LLM]
    assert responses[0].context == []
    assert len(responses[1].context) == 3


async def test_backend_detached_mid_request_answers_without_context() -> None:
    generator = FakeGenerator(reply="I can only help with our products.")
    orchestrator = build(generator, None)

    class DetachingRetrieval(FakeRetrieval):
        async def health(self, timeout: float) -> None:
            orchestrator.retrieval = None

    orchestrator.retrieval = DetachingRetrieval(context=WARRANTY_CONTEXT)

    response = await orchestrator.answer("What is the warranty?")

    assert response.source is Tier.LLM_FALLBACK
    assert response.context == []
    assert generator.calls[0][0] == PERSONA.no_context_prompt()
