"""HTTP transport for the llama.cpp server: JSON and event-stream POSTs.

Both paths validate failed responses through ``_errors`` before returning,
so a stream that fails its handshake raises before any event is produced.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from castor._errors import failed_response_error, wrap_transport_error
from castor._schemas import ErrorDetail, ErrorEnvelope
from castor.errors import APIError, CastorError, ChunkParseError, RequestAbortedError

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Mapping

logger = logging.getLogger(__name__)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class JsonResponse(Generic[ModelT]):
    """A validated JSON response with its raw body and headers."""

    value: ModelT
    raw: Any
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ParseResult(Generic[ModelT]):
    """Outcome of parsing one stream chunk: a value or an error, never both."""

    value: ModelT | None = None
    error: CastorError | None = None
    raw: str = ""

    @property
    def success(self) -> bool:
        """Whether the chunk parsed into a value."""
        return self.error is None


@dataclass(frozen=True)
class EventStreamResponse(Generic[ModelT]):
    """An open event stream: headers now, parsed chunks as they arrive."""

    headers: dict[str, str]
    chunks: AsyncIterator[ParseResult[ModelT]]


async def abortable(awaitable: Awaitable[T], abort_signal: asyncio.Event | None) -> T:
    """Await *awaitable* unless *abort_signal* fires first.

    Raises:
        RequestAbortedError: If the signal is set before or while waiting.
    """
    if abort_signal is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    if abort_signal.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RequestAbortedError("Request aborted", retryable=False)

    waiter = asyncio.ensure_future(abort_signal.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise
    if task in done:
        waiter.cancel()
        return task.result()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise RequestAbortedError("Request aborted", retryable=False)


async def post_json(
    client: httpx.AsyncClient,
    *,
    url: str,
    headers: Mapping[str, str],
    body: Mapping[str, Any],
    schema: type[ModelT],
    provider: str,
    abort_signal: asyncio.Event | None = None,
) -> JsonResponse[ModelT]:
    """POST *body* as JSON and validate the JSON response against *schema*.

    Raises:
        APIError: On transport failure, non-2xx status, or an unparseable body.
    """
    logger.debug("POST %s fields=%s", url, sorted(body))
    try:
        response = await abortable(
            client.post(url, headers=dict(headers), json=dict(body)), abort_signal
        )
    except (httpx.HTTPError, APIError) as e:
        raise wrap_transport_error(e, provider=provider, phase="request", url=url) from e

    response_headers = dict(response.headers)
    if not response.is_success:
        raise failed_response_error(
            status_code=response.status_code,
            body=response.text,
            headers=response_headers,
            provider=provider,
            phase="request",
            url=url,
        )

    try:
        raw = response.json()
        value = schema.model_validate(raw)
    except (ValueError, ValidationError) as e:
        raise APIError(
            f"{provider} returned an invalid response body: {e}",
            provider=provider,
            phase="parse",
            status_code=response.status_code,
            url=url,
            response_body=response.text,
            response_headers=response_headers,
            retryable=False,
        ) from e
    return JsonResponse(value=value, raw=raw, headers=response_headers)


async def post_event_stream(
    client: httpx.AsyncClient,
    *,
    url: str,
    headers: Mapping[str, str],
    body: Mapping[str, Any],
    schema: type[ModelT],
    provider: str,
    abort_signal: asyncio.Event | None = None,
) -> EventStreamResponse[ModelT]:
    """POST *body* and open a server-sent event stream of *schema* chunks.

    The handshake (status check) completes before this returns. Chunk parse
    failures are yielded as failed ``ParseResult`` values; transport
    failures and aborts raise from the chunk iterator.
    """
    logger.debug("POST %s (stream) fields=%s", url, sorted(body))
    request = client.build_request("POST", url, headers=dict(headers), json=dict(body))
    try:
        response = await abortable(client.send(request, stream=True), abort_signal)
    except (httpx.HTTPError, APIError) as e:
        raise wrap_transport_error(e, provider=provider, phase="request", url=url) from e

    if not response.is_success:
        try:
            await response.aread()
        finally:
            await response.aclose()
        raise failed_response_error(
            status_code=response.status_code,
            body=response.text,
            headers=dict(response.headers),
            provider=provider,
            phase="request",
            url=url,
        )

    return EventStreamResponse(
        headers=dict(response.headers),
        chunks=_iter_chunks(
            response,
            schema=schema,
            provider=provider,
            url=url,
            abort_signal=abort_signal,
        ),
    )


async def _next_line(lines: AsyncIterator[str]) -> str | None:
    try:
        return await lines.__anext__()
    except StopAsyncIteration:
        return None


async def _read_lines(
    response: httpx.Response, abort_signal: asyncio.Event | None
) -> AsyncIterator[str]:
    lines = response.aiter_lines()
    while True:
        line = await abortable(_next_line(lines), abort_signal)
        if line is None:
            return
        yield line


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncIterator[tuple[str, str]]:
    """Yield ``(event, data)`` pairs from server-sent event lines.

    ``event`` is ``"data"`` for plain data events and ``"error"`` for the
    llama.cpp ``error:`` field. Comments and other fields are skipped.
    """
    event = "data"
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "data", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data.append(value)
        elif name == "error":
            event = "error"
            data.append(value)
    if data:
        yield event, "\n".join(data)


def _parse_chunk(data: str, schema: type[ModelT]) -> ParseResult[ModelT]:
    try:
        value = schema.model_validate_json(data)
    except ValidationError as e:
        logger.debug("Malformed stream chunk (%d errors): %.200s", e.error_count(), data)
        return ParseResult(
            error=ChunkParseError(f"Malformed stream chunk: {e}", raw=data),
            raw=data,
        )
    return ParseResult(value=value, raw=data)


def _server_error_event(data: str, *, provider: str, url: str) -> ParseResult[Any]:
    try:
        detail = ErrorEnvelope.model_validate_json(data).error
    except ValidationError:
        try:
            detail = ErrorDetail.model_validate_json(data)
        except ValidationError:
            detail = ErrorDetail(message=data)
    error = APIError(
        detail.message,
        provider=provider,
        phase="stream",
        url=url,
        error_type=detail.type,
        error_code=detail.code,
        response_body=data,
    )
    return ParseResult(error=error, raw=data)


async def _iter_chunks(
    response: httpx.Response,
    *,
    schema: type[ModelT],
    provider: str,
    url: str,
    abort_signal: asyncio.Event | None,
) -> AsyncIterator[ParseResult[ModelT]]:
    try:
        async for event, data in iter_sse_events(_read_lines(response, abort_signal)):
            if data == "[DONE]":
                continue
            if event == "error":
                yield _server_error_event(data, provider=provider, url=url)
                continue
            yield _parse_chunk(data, schema)
    except (httpx.HTTPError, APIError) as e:
        raise wrap_transport_error(e, provider=provider, phase="stream", url=url) from e
    finally:
        await response.aclose()
