"""Map failed HTTP responses and transport exceptions into ``APIError``.

Both the JSON and the event-stream request paths go through these helpers
before any response normalization runs.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from castor._schemas import ErrorEnvelope
from castor.config import API_KEY_ENV_VAR
from castor.errors import APIError, _walk_exception_chain

if TYPE_CHECKING:
    from collections.abc import Mapping

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Return the ``Retry-After`` delay in seconds, if present and numeric."""
    if not headers:
        return None
    raw = headers.get("Retry-After") or headers.get("retry-after")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def _auth_hint(status_code: int | None) -> str | None:
    if status_code in {401, 403}:
        return f"Check the server's --api-key and set {API_KEY_ENV_VAR} or pass api_key=..."
    if status_code == 503:
        return "The server may still be loading the model; try again shortly."
    return None


def failed_response_error(
    *,
    status_code: int,
    body: str,
    headers: Mapping[str, str],
    provider: str,
    phase: str,
    url: str,
) -> APIError:
    """Build an ``APIError`` from a non-2xx response.

    The llama.cpp error envelope supplies the message when it parses;
    otherwise a generic HTTP error carries the raw body.
    """
    error_type: str | None = None
    error_code: int | str | None = None
    try:
        envelope = ErrorEnvelope.model_validate_json(body)
    except ValidationError:
        message = f"{provider} {phase} failed (status={status_code})"
        if body.strip():
            message = f"{message}: {body.strip()[:500]}"
    else:
        message = envelope.error.message
        error_type = envelope.error.type
        error_code = envelope.error.code

    retry_after_s = parse_retry_after(headers)
    return APIError(
        message,
        hint=_auth_hint(status_code),
        retryable=status_code in RETRYABLE_STATUS_CODES or retry_after_s is not None,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase=phase,
        url=url,
        response_body=body,
        response_headers=headers,
        error_type=error_type,
        error_code=error_code,
    )


def wrap_transport_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    url: str | None = None,
) -> APIError:
    """Map an httpx exception into ``APIError`` with retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped: fill in missing context only.
    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        if exc.url is None:
            exc.url = url
        return exc

    retryable = False
    for e in _walk_exception_chain(exc):
        if isinstance(e, (httpx.TimeoutException, httpx.TransportError)):
            retryable = True
            break

    cause = str(exc) or type(exc).__name__
    return APIError(
        f"{provider} {phase} failed: {cause}",
        retryable=retryable,
        provider=provider,
        phase=phase,
        url=url,
    )
