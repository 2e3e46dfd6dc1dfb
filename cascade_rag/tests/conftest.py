from __future__ import annotations

"""Shared pytest fixtures and test environment defaults."""

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "64"
os.environ["RAG_RETRIEVAL_BACKEND"] = "local"
os.environ.setdefault("OPENROUTER_API_KEY", "test-key")
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("RAG_PERSONA_PATH", None)
os.environ.pop("RAG_SOURCES", None)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
