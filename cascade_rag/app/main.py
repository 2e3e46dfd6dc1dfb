from __future__ import annotations

"""FastAPI application: retrieval endpoints for the index and the chat cascade."""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from cascade_rag.app.dependencies import (
    close_services,
    get_ask_generator,
    get_orchestrator,
    get_persona,
    get_settings,
    get_vector_index,
)
from cascade_rag.app.logconfig import configure_logging
from cascade_rag.app.metrics import metrics_middleware, metrics_response, record_cascade
from cascade_rag.app.schemas import (
    AskRequest,
    AskResponse,
    ChatRequest,
    ChatResponse,
    HealthResponse,
    StatsResponse,
)
from cascade_rag.app.settings import Settings
from cascade_rag.rag.embeddings import EmbeddingUnavailable
from cascade_rag.rag.llm import GenerationClient, GenerationError
from cascade_rag.rag.orchestrator import QueryOrchestrator
from cascade_rag.rag.persona import Persona
from cascade_rag.rag.retrieval import format_context
from cascade_rag.vectorstore.local import EmbeddingModelMismatch, IndexNotFound, LocalVectorIndex

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_settings()
    configure_logging(config.log_level)
    config.validate_for_serving()
    if config.retrieval_backend == "local":
        # Fail startup when the index is missing or was built with another model.
        get_vector_index()
    get_orchestrator()
    logger.info(
        "service_started",
        extra={"retrieval_backend": config.retrieval_backend, "llm_model": config.llm_model},
    )
    yield
    close_services()


app = FastAPI(title="Cascade RAG", version="0.1.0", lifespan=lifespan)


def _safe_error_message(exc: Exception) -> str:
    """Return a safe error type name for logs and responses."""
    return type(exc).__name__


@app.exception_handler(IndexNotFound)
@app.exception_handler(EmbeddingModelMismatch)
@app.exception_handler(EmbeddingUnavailable)
async def service_unavailable(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "retrieval_unavailable",
        extra={"path": request.url.path, "detail": _safe_error_message(exc)},
    )
    return JSONResponse(status_code=503, content={"detail": "Retrieval is unavailable"})


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health", response_model=HealthResponse)
async def health(index: LocalVectorIndex = Depends(get_vector_index)) -> HealthResponse:
    """Report ok once the index and its embedding provider are loaded."""
    if not index.health()["ok"]:
        raise HTTPException(status_code=503, detail="Index has no embedding provider")
    return HealthResponse(status="ok")


@app.get("/stats", response_model=StatsResponse)
async def stats(index: LocalVectorIndex = Depends(get_vector_index)) -> StatsResponse:
    return StatsResponse(**index.stats())


@app.post("/ask", response_model=AskResponse, response_model_exclude_none=True)
@app.post("/rag", response_model=AskResponse, response_model_exclude_none=True)
async def ask(
    request: AskRequest,
    config: Settings = Depends(get_settings),
    index: LocalVectorIndex = Depends(get_vector_index),
    persona: Persona = Depends(get_persona),
    generator: GenerationClient | None = Depends(get_ask_generator),
) -> AskResponse:
    """Return the top-k passages for a question, plus an answer when enabled."""
    vector = await index.embedder.aembed(request.question)
    results = await asyncio.to_thread(index.similarity_search_by_vector, vector, config.top_k)
    context = format_context(results)
    answer = None
    if generator is not None and context:
        messages = [
            ("user", f"Retrieved context: {' '.join(context)}"),
            ("user", request.question),
        ]
        try:
            answer = await generator.generate(
                persona.grounded_prompt(), messages, config.grounded_timeout
            )
        except GenerationError as exc:
            logger.warning("ask_generation_failed", extra={"detail": _safe_error_message(exc)})
    return AskResponse(context=context, answer=answer)


@app.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """Answer a chat message through the cascade. Always returns 200."""
    started = time.monotonic()
    response = await orchestrator.answer(request.message)
    record_cascade(response, time.monotonic() - started)
    return ChatResponse(**response.as_dict())
