"""Castor: a llama.cpp server adapter for backend-agnostic chat and embeddings.

Public API:
    - create_llamacpp(): Build a provider for a llama.cpp server
    - CallOptions / Message: Backend-agnostic call input
    - GenerateResult / StreamResult / EmbedResult: Normalized output
"""

from __future__ import annotations

import logging

from castor.chat import LlamacppChatModel
from castor.config import ProviderSettings
from castor.embedding import LlamacppEmbeddingModel
from castor.errors import (
    APIError,
    CastorError,
    ChunkParseError,
    ConfigurationError,
    NoSuchModelError,
    RequestAbortedError,
    SchemaValidationError,
    StreamConsumedError,
    TooManyValuesError,
)
from castor.finish_reason import map_finish_reason
from castor.models import (
    CallOptions,
    CallWarning,
    EmbedResult,
    FilePart,
    Finish,
    FinishReason,
    GenerateResult,
    Message,
    StreamError,
    StreamEvent,
    StreamResult,
    StreamStart,
    TextDelta,
    TextEnd,
    TextPart,
    Usage,
)
from castor.options import (
    LlamacppEmbeddingOptions,
    LlamacppLanguageModelOptions,
    ResolvedRequest,
    resolve_call_options,
)
from castor.provider import LlamacppProvider, create_llamacpp

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("castor-llamacpp")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("castor").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "CallOptions",
    "CallWarning",
    "CastorError",
    "ChunkParseError",
    "ConfigurationError",
    "EmbedResult",
    "FilePart",
    "Finish",
    "FinishReason",
    "GenerateResult",
    "LlamacppChatModel",
    "LlamacppEmbeddingModel",
    "LlamacppEmbeddingOptions",
    "LlamacppLanguageModelOptions",
    "LlamacppProvider",
    "Message",
    "NoSuchModelError",
    "ProviderSettings",
    "RequestAbortedError",
    "ResolvedRequest",
    "SchemaValidationError",
    "StreamConsumedError",
    "StreamError",
    "StreamEvent",
    "StreamResult",
    "StreamStart",
    "TextDelta",
    "TextEnd",
    "TextPart",
    "TooManyValuesError",
    "Usage",
    "create_llamacpp",
    "map_finish_reason",
    "resolve_call_options",
]
