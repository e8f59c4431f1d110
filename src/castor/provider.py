"""Provider factory: wires settings, headers, and the HTTP client into models."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from castor._model_config import ModelConfig
from castor.chat import LlamacppChatModel
from castor.config import DEFAULT_TIMEOUT_S, ProviderSettings
from castor.embedding import DEFAULT_MAX_EMBEDDINGS_PER_CALL, LlamacppEmbeddingModel
from castor.errors import NoSuchModelError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

CHAT_PROVIDER = "llamacpp.chat"
EMBEDDING_PROVIDER = "llamacpp.embedding"


class LlamacppProvider:
    """Entry point for llama.cpp chat and embedding models.

    Build one with ``create_llamacpp()``. Calling the provider directly is
    shorthand for ``chat(model_id)``.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily initialize and return the shared async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.timeout_s)
        return self._client

    def _get_headers(self) -> dict[str, str]:
        """Build request headers; the API key is resolved on every call."""
        from castor import __version__

        headers = dict(self.settings.headers)
        api_key = self.settings.resolve_api_key()
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        suffix = f"castor/llamacpp/{__version__}"
        user_agent_key = next(
            (k for k in headers if k.lower() == "user-agent"), "User-Agent"
        )
        existing = headers.get(user_agent_key)
        headers[user_agent_key] = f"{existing} {suffix}" if existing else suffix
        return headers

    def _model_config(self, provider: str) -> ModelConfig:
        return ModelConfig(
            provider=provider,
            base_url=self.settings.base_url or "",
            headers=self._get_headers,
            client=self._get_client,
        )

    def __call__(self, model_id: str) -> LlamacppChatModel:
        """Return a chat model for *model_id*."""
        return self.chat(model_id)

    def chat(self, model_id: str) -> LlamacppChatModel:
        """Return a chat model for *model_id*."""
        return LlamacppChatModel(model_id, self._model_config(CHAT_PROVIDER))

    language_model = chat

    def embedding(
        self,
        model_id: str,
        *,
        max_embeddings_per_call: int = DEFAULT_MAX_EMBEDDINGS_PER_CALL,
    ) -> LlamacppEmbeddingModel:
        """Return an embedding model for *model_id*."""
        return LlamacppEmbeddingModel(
            model_id,
            self._model_config(EMBEDDING_PROVIDER),
            max_embeddings_per_call=max_embeddings_per_call,
        )

    text_embedding = embedding
    text_embedding_model = embedding

    def image_model(self, model_id: str) -> None:
        """Raise: llama.cpp has no image generation endpoint."""
        raise NoSuchModelError(model_id=model_id, model_type="imageModel")

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        client = self._client
        if client is None or not self._owns_client:
            return
        self._client = None
        await client.aclose()


def create_llamacpp(
    *,
    base_url: str | None = None,
    api_key: str | None = None,
    headers: Mapping[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout_s: float | None = DEFAULT_TIMEOUT_S,
) -> LlamacppProvider:
    """Create a llama.cpp provider.

    Args:
        base_url: Server URL; defaults to ``LLAMACPP_BASE_URL`` or
            ``http://127.0.0.1:8080``.
        api_key: Bearer token; defaults to ``LLAMACPP_API_KEY`` when set.
        headers: Extra headers sent with every request.
        http_client: Client to use instead of an owned one (not closed by
            ``aclose()``).
        timeout_s: Timeout for the owned client; ignored with *http_client*.

    Example:
        llamacpp = create_llamacpp(base_url="http://localhost:8080")
        result = await llamacpp("local").generate(
            CallOptions(prompt=[Message(role="user", content="Hi")])
        )
    """
    settings = ProviderSettings(
        base_url=base_url,
        api_key=api_key,
        headers=dict(headers or {}),
        timeout_s=timeout_s,
    )
    logger.debug("Created llama.cpp provider: %s", settings)
    return LlamacppProvider(settings, http_client=http_client)
