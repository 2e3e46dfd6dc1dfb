from __future__ import annotations

import logging
from functools import lru_cache

from cascade_rag.app.settings import ConfigError, Settings
from cascade_rag.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingProvider,
    HashEmbedder,
    HTTPEmbedder,
    OpenAIEmbedder,
)
from cascade_rag.rag.llm import GenerationClient
from cascade_rag.rag.orchestrator import CascadeTimeouts, QueryOrchestrator
from cascade_rag.rag.persona import Persona, load_persona
from cascade_rag.rag.retrieval import HTTPRetrievalBackend, LocalRetrievalBackend, RetrievalBackend
from cascade_rag.vectorstore.local import LocalVectorIndex

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def build_embedder(config: Settings) -> EmbeddingProvider:
    provider = config.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(
            dimension=config.embedding_dimension,
            batch_size=config.embedding_batch_size,
        )
    if provider == "http":
        return HTTPEmbedder(
            base_url=config.embedding_base_url or "",
            model_id=config.embedding_model,
            dimension=config.embedding_dimension,
            api_key=config.embedding_api_key,
            batch_size=config.embedding_batch_size,
            timeout=config.embedding_timeout,
        )
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=config.openai_api_key or "",
            model_id=config.embedding_model,
            dimension=config.embedding_dimension,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")


def build_retrieval_backend(config: Settings) -> RetrievalBackend | None:
    backend = config.retrieval_backend.lower().strip()
    if backend == "local":
        return LocalRetrievalBackend(index=get_vector_index())
    if backend == "http":
        if not config.rag_server_url:
            raise ConfigError("RAG_SERVER_URL is required for the http retrieval backend")
        return HTTPRetrievalBackend(base_url=config.rag_server_url)
    if backend == "none":
        return None
    raise ConfigError(f"Unsupported retrieval backend: {backend}")


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return build_embedder(get_settings())


@lru_cache
def get_vector_index() -> LocalVectorIndex:
    config = get_settings()
    return LocalVectorIndex.load(config.index_path, get_embedder())


@lru_cache
def get_persona() -> Persona:
    config = get_settings()
    if config.persona_path:
        return load_persona(config.persona_path)
    return Persona()


@lru_cache
def get_generation_client() -> GenerationClient:
    config = get_settings()
    if not config.openrouter_api_key:
        raise ConfigError("OPENROUTER_API_KEY is required for generation")
    return GenerationClient(
        api_key=config.openrouter_api_key,
        base_url=config.llm_base_url,
        model=config.llm_model,
        temperature=config.llm_temperature,
        max_tokens=config.llm_max_tokens,
    )


def get_ask_generator() -> GenerationClient | None:
    """Generation client for /ask, only when the retrieval server also answers."""
    if not get_settings().server_answers:
        return None
    return get_generation_client()


@lru_cache
def get_orchestrator() -> QueryOrchestrator:
    config = get_settings()
    timeouts = CascadeTimeouts(
        health=config.health_timeout,
        retrieve=config.retrieve_timeout,
        grounded=config.grounded_timeout,
        ungrounded=config.ungrounded_timeout,
        total=config.total_budget,
    )
    return QueryOrchestrator(
        generator=get_generation_client(),
        persona=get_persona(),
        retrieval=build_retrieval_backend(config),
        timeouts=timeouts,
        top_k=config.top_k,
    )


def reset_caches() -> None:
    get_orchestrator.cache_clear()
    get_generation_client.cache_clear()
    get_persona.cache_clear()
    get_vector_index.cache_clear()
    get_embedder.cache_clear()
    get_settings.cache_clear()


def close_services() -> None:
    """Release the loaded index and forget every cached service."""
    if get_vector_index.cache_info().currsize:
        get_vector_index().close()
        logger.info("vector_index_closed")
    reset_caches()
