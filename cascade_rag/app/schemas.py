from __future__ import annotations

from pydantic import BaseModel, Field


class AskRequest(BaseModel):
    question: str = Field(min_length=1)


class AskResponse(BaseModel):
    context: list[str]
    answer: str | None = None


class ChatRequest(BaseModel):
    message: str = Field(max_length=4000)


class ChatResponse(BaseModel):
    reply: str
    context: list[str]
    source: str


class HealthResponse(BaseModel):
    status: str


class StatsResponse(BaseModel):
    backend: str
    document_count: int
    embedding_dimension: int
    embedding_model: str
