"""llama.cpp chat model: ``/completion`` requests, one-shot and streamed."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from castor._http import post_event_stream, post_json
from castor._model_config import combine_headers
from castor._schemas import CompletionChunk, CompletionResponse
from castor.finish_reason import map_finish_reason
from castor.models import (
    EventStream,
    GenerateResult,
    RawResponse,
    StreamResult,
    TextContent,
    Usage,
)
from castor.options import resolve_call_options
from castor.streaming import normalize_stream

if TYPE_CHECKING:
    from collections.abc import Mapping

    from castor._model_config import ModelConfig
    from castor.models import CallOptions
    from castor.options import ResolvedRequest

logger = logging.getLogger(__name__)


def parse_completion_response(
    value: CompletionResponse,
    *,
    raw: Any,
    headers: Mapping[str, str],
    request: ResolvedRequest,
) -> GenerateResult:
    """Normalize a validated ``/completion`` response into a ``GenerateResult``."""
    content = (TextContent(text=value.content),) if value.content else ()
    return GenerateResult(
        content=content,
        finish_reason=map_finish_reason(value.stop_type),
        usage=Usage.from_counts(value.tokens_evaluated, value.tokens_predicted),
        warnings=request.warnings,
        request_body=request.body,
        response=RawResponse(headers=dict(headers), body=raw),
    )


class LlamacppChatModel:
    """Chat model backed by a llama.cpp server.

    Create instances through ``create_llamacpp(...).chat(model_id)``. The
    model id is informational: a llama.cpp server serves whichever model it
    was started with.
    """

    def __init__(self, model_id: str, config: ModelConfig) -> None:
        self.model_id = model_id
        self._config = config

    @property
    def provider(self) -> str:
        """Provider name, e.g. ``"llamacpp.chat"``."""
        return self._config.provider

    @property
    def _url(self) -> str:
        return f"{self._config.base_url}/completion"

    async def generate(self, options: CallOptions) -> GenerateResult:
        """Run one completion and return the normalized result.

        Raises:
            SchemaValidationError: If the llama.cpp options are invalid.
            APIError: If the request fails; never retried here.
        """
        request = resolve_call_options(options)
        response = await post_json(
            self._config.client(),
            url=self._url,
            headers=combine_headers(self._config.headers(), options.headers),
            body=request.body,
            schema=CompletionResponse,
            provider=self.provider,
            abort_signal=options.abort_signal,
        )
        return parse_completion_response(
            response.value,
            raw=response.raw,
            headers=response.headers,
            request=request,
        )

    async def stream(self, options: CallOptions) -> StreamResult:
        """Open a streamed completion.

        Errors that happen before the stream opens raise here; after that,
        malformed chunks arrive as ``error`` events and transport failures
        raise from the event iterator.
        """
        request = resolve_call_options(options).with_stream()
        response = await post_event_stream(
            self._config.client(),
            url=self._url,
            headers=combine_headers(self._config.headers(), options.headers),
            body=request.body,
            schema=CompletionChunk,
            provider=self.provider,
            abort_signal=options.abort_signal,
        )
        events = normalize_stream(
            response.chunks,
            request.warnings,
            abort_signal=options.abort_signal,
            provider=self.provider,
        )
        return StreamResult(
            stream=EventStream(events),
            request_body=request.body,
            response_headers=response.headers,
        )
