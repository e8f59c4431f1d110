"""Pydantic models for llama.cpp server response bodies.

Only consumed fields are modeled; unknown fields are ignored so newer
server builds keep parsing.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CompletionTimings(_WireModel):
    predicted_n: int | None = None


class CompletionResponse(_WireModel):
    content: str
    stop_type: str | None = None
    tokens_evaluated: int | None = None
    tokens_predicted: int | None = None
    timings: CompletionTimings | None = None


class CompletionChunk(_WireModel):
    content: str | None = None
    stop_type: str | None = None
    tokens_evaluated: int | None = None
    tokens_predicted: int | None = None
    timings: CompletionTimings | None = None


class EmbeddingItem(_WireModel):
    embedding: list[float]


class EmbeddingTokenUsage(_WireModel):
    prompt_tokens: int


class EmbeddingResponse(_WireModel):
    data: list[EmbeddingItem]
    usage: EmbeddingTokenUsage | None = None


class ErrorDetail(_WireModel):
    code: int | str | None = None
    message: str
    type: str | None = None


class ErrorEnvelope(_WireModel):
    """``{"error": {"code": ..., "message": ..., "type": ...}}``."""

    error: ErrorDetail
