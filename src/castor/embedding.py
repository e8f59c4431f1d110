"""llama.cpp embedding model: ``/embeddings`` requests."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from castor._http import post_json
from castor._model_config import combine_headers
from castor._schemas import EmbeddingResponse
from castor.errors import TooManyValuesError
from castor.models import EmbeddingUsage, EmbedResult, RawResponse
from castor.options import LlamacppEmbeddingOptions, parse_provider_options

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Mapping, Sequence

    from castor._model_config import ModelConfig

DEFAULT_MAX_EMBEDDINGS_PER_CALL = 32


class LlamacppEmbeddingModel:
    """Embedding model backed by a llama.cpp server.

    Each call embeds at most ``max_embeddings_per_call`` values and is never
    split into batches; chunk larger inputs before calling ``embed``.
    """

    supports_parallel_calls = False

    def __init__(
        self,
        model_id: str,
        config: ModelConfig,
        *,
        max_embeddings_per_call: int = DEFAULT_MAX_EMBEDDINGS_PER_CALL,
    ) -> None:
        self.model_id = model_id
        self.max_embeddings_per_call = max_embeddings_per_call
        self._config = config

    @property
    def provider(self) -> str:
        """Provider name, e.g. ``"llamacpp.embedding"``."""
        return self._config.provider

    async def embed(
        self,
        values: Sequence[str],
        *,
        abort_signal: asyncio.Event | None = None,
        headers: Mapping[str, str | None] | None = None,
        provider_options: Mapping[str, Mapping[str, Any]] | None = None,
    ) -> EmbedResult:
        """Embed *values*, one vector per value in input order.

        Raises:
            TooManyValuesError: If more than ``max_embeddings_per_call``
                values are given. No request is sent.
            SchemaValidationError: If the llama.cpp options are invalid.
            APIError: If the request fails.
        """
        if len(values) > self.max_embeddings_per_call:
            raise TooManyValuesError(
                provider=self.provider,
                model_id=self.model_id,
                max_embeddings_per_call=self.max_embeddings_per_call,
                values=values,
            )

        llamacpp = parse_provider_options(provider_options, LlamacppEmbeddingOptions)
        body: dict[str, Any] = {
            "model": self.model_id,
            "input": list(values),
            "encoding_format": "float",
        }
        if llamacpp.embd_normalize is not None:
            body["embd_normalize"] = llamacpp.embd_normalize

        response = await post_json(
            self._config.client(),
            url=f"{self._config.base_url}/embeddings",
            headers=combine_headers(self._config.headers(), headers),
            body=body,
            schema=EmbeddingResponse,
            provider=self.provider,
            abort_signal=abort_signal,
        )
        usage = response.value.usage
        return EmbedResult(
            embeddings=[item.embedding for item in response.value.data],
            usage=EmbeddingUsage(tokens=usage.prompt_tokens) if usage else None,
            response=RawResponse(headers=response.headers, body=response.raw),
        )
