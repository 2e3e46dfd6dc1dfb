from __future__ import annotations

import json
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from cascade_rag.loaders.chunking import DEFAULT_SEPARATORS

load_dotenv()

EMBEDDING_PROVIDERS = {"hash", "http", "openai"}
RETRIEVAL_BACKENDS = {"local", "http", "none"}


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""
    pass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [value.strip() for value in raw.split(",") if value.strip()]


def _env_separators(name: str) -> list[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(DEFAULT_SEPARATORS)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"{name} must be a JSON list of strings") from exc
    if not isinstance(data, list) or not all(isinstance(item, str) and item for item in data):
        raise ConfigError(f"{name} must be a JSON list of non-empty strings")
    return data


def _env_number(name: str, default: str, cast):
    raw = os.getenv(name, default).strip()
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    sources: list[str] = field(default_factory=list)
    index_path: str = "vector_store"
    chunk_size: int = 700
    chunk_overlap: int = 100
    chunk_separators: list[str] = field(default_factory=lambda: list(DEFAULT_SEPARATORS))
    ingest_batch_size: int = 50
    web_timeout: float = 15.0
    embedding_provider: str = "hash"
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dimension: int = 384
    embedding_batch_size: int = 8
    embedding_base_url: str | None = None
    embedding_api_key: str | None = None
    embedding_timeout: float = 30.0
    openai_api_key: str | None = None
    openrouter_api_key: str | None = None
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "openai/gpt-oss-120b:free"
    llm_temperature: float = 0.0
    llm_max_tokens: int = 500
    retrieval_backend: str = "local"
    rag_server_url: str | None = None
    top_k: int = 3
    health_timeout: float = 1.0
    retrieve_timeout: float = 4.0
    grounded_timeout: float = 4.0
    ungrounded_timeout: float = 3.0
    total_budget: float = 9.5
    server_answers: bool = False
    persona_path: str | None = None
    metrics_enabled: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            sources=_env_list("RAG_SOURCES"),
            index_path=os.getenv("RAG_INDEX_PATH", "vector_store"),
            chunk_size=_env_number("RAG_CHUNK_SIZE", "700", int),
            chunk_overlap=_env_number("RAG_CHUNK_OVERLAP", "100", int),
            chunk_separators=_env_separators("RAG_CHUNK_SEPARATORS"),
            ingest_batch_size=_env_number("RAG_INGEST_BATCH_SIZE", "50", int),
            web_timeout=_env_number("RAG_WEB_TIMEOUT", "15", float),
            embedding_provider=os.getenv("EMBEDDING_PROVIDER", "hash").strip().lower(),
            embedding_model=os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            embedding_dimension=_env_number("EMBEDDING_DIMENSION", "384", int),
            embedding_batch_size=_env_number("EMBEDDING_BATCH_SIZE", "8", int),
            embedding_base_url=os.getenv("EMBEDDING_BASE_URL") or None,
            embedding_api_key=os.getenv("EMBEDDING_API_KEY") or None,
            embedding_timeout=_env_number("EMBEDDING_TIMEOUT", "30", float),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY") or None,
            llm_base_url=os.getenv("LLM_BASE_URL", "https://openrouter.ai/api/v1"),
            llm_model=os.getenv("LLM_MODEL", "openai/gpt-oss-120b:free"),
            llm_temperature=_env_number("LLM_TEMPERATURE", "0.0", float),
            llm_max_tokens=_env_number("LLM_MAX_TOKENS", "500", int),
            retrieval_backend=os.getenv("RAG_RETRIEVAL_BACKEND", "local").strip().lower(),
            rag_server_url=os.getenv("RAG_SERVER_URL") or None,
            top_k=_env_number("RAG_TOP_K", "3", int),
            health_timeout=_env_number("RAG_HEALTH_TIMEOUT", "1.0", float),
            retrieve_timeout=_env_number("RAG_RETRIEVE_TIMEOUT", "4.0", float),
            grounded_timeout=_env_number("RAG_GROUNDED_TIMEOUT", "4.0", float),
            ungrounded_timeout=_env_number("RAG_UNGROUNDED_TIMEOUT", "3.0", float),
            total_budget=_env_number("RAG_TOTAL_BUDGET", "9.5", float),
            server_answers=_env_bool("RAG_SERVER_ANSWERS", "false"),
            persona_path=os.getenv("RAG_PERSONA_PATH") or None,
            metrics_enabled=_env_bool("RAG_METRICS_ENABLED", "true"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def embedding_problems(self) -> list[str]:
        problems: list[str] = []
        if self.embedding_provider not in EMBEDDING_PROVIDERS:
            problems.append(f"Unsupported EMBEDDING_PROVIDER: {self.embedding_provider}")
        if self.embedding_dimension <= 0:
            problems.append("EMBEDDING_DIMENSION must be greater than zero")
        if self.embedding_batch_size <= 0:
            problems.append("EMBEDDING_BATCH_SIZE must be greater than zero")
        if self.embedding_provider == "http" and not self.embedding_base_url:
            problems.append("EMBEDDING_BASE_URL is required for the http embedding provider")
        if self.embedding_provider == "openai" and not self.openai_api_key:
            problems.append("OPENAI_API_KEY is required for the openai embedding provider")
        return problems

    def validate_for_ingestion(self) -> None:
        problems = self.embedding_problems()
        if not self.sources:
            problems.append("RAG_SOURCES must list at least one path or URL")
        if self.chunk_size <= 0:
            problems.append("RAG_CHUNK_SIZE must be greater than zero")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            problems.append("RAG_CHUNK_OVERLAP must be >= 0 and smaller than RAG_CHUNK_SIZE")
        if self.ingest_batch_size <= 0:
            problems.append("RAG_INGEST_BATCH_SIZE must be greater than zero")
        _raise_if(problems)

    def validate_for_serving(self) -> None:
        problems: list[str] = []
        if self.retrieval_backend not in RETRIEVAL_BACKENDS:
            problems.append(f"Unsupported RAG_RETRIEVAL_BACKEND: {self.retrieval_backend}")
        if self.retrieval_backend == "local":
            problems.extend(self.embedding_problems())
        if self.retrieval_backend == "http" and not self.rag_server_url:
            problems.append("RAG_SERVER_URL is required for the http retrieval backend")
        if not self.openrouter_api_key:
            problems.append("OPENROUTER_API_KEY is required to serve chat")
        if self.top_k <= 0:
            problems.append("RAG_TOP_K must be greater than zero")
        timeouts = {
            "RAG_HEALTH_TIMEOUT": self.health_timeout,
            "RAG_RETRIEVE_TIMEOUT": self.retrieve_timeout,
            "RAG_GROUNDED_TIMEOUT": self.grounded_timeout,
            "RAG_UNGROUNDED_TIMEOUT": self.ungrounded_timeout,
            "RAG_TOTAL_BUDGET": self.total_budget,
        }
        for name, value in timeouts.items():
            if value <= 0:
                problems.append(f"{name} must be greater than zero")
        _raise_if(problems)


def _raise_if(problems: list[str]) -> None:
    if problems:
        raise ConfigError("Invalid configuration: " + "; ".join(problems))

