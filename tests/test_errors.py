"""Error hierarchy and HTTP failure mapping."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from castor._errors import failed_response_error, parse_retry_after, wrap_transport_error
from castor.errors import (
    APIError,
    CastorError,
    ConfigurationError,
    NoSuchModelError,
    RequestAbortedError,
    SchemaValidationError,
    TooManyValuesError,
)

pytestmark = pytest.mark.unit

URL = "http://llama.test/completion"


def test_hierarchy() -> None:
    assert issubclass(ConfigurationError, CastorError)
    assert issubclass(SchemaValidationError, ConfigurationError)
    assert issubclass(APIError, CastorError)
    assert issubclass(RequestAbortedError, APIError)
    assert issubclass(TooManyValuesError, CastorError)
    assert issubclass(NoSuchModelError, CastorError)


def test_api_error_metadata_defaults() -> None:
    err = APIError("boom")

    assert err.retryable is None
    assert err.status_code is None
    assert err.response_headers == {}
    assert err.hint is None


def test_no_such_model_message() -> None:
    err = NoSuchModelError(model_id="sdxl", model_type="imageModel")
    assert str(err) == "No such imageModel: sdxl"


@pytest.mark.parametrize(
    ("headers", "expected"),
    [
        ({"Retry-After": "3"}, 3.0),
        ({"retry-after": "0.5"}, 0.5),
        ({"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}, None),
        ({"Retry-After": "-1"}, None),
        ({}, None),
        (None, None),
    ],
)
def test_parse_retry_after(headers, expected) -> None:
    assert parse_retry_after(headers) == expected


@pytest.mark.parametrize(
    ("status_code", "retryable"),
    [(400, False), (404, False), (429, True), (500, True), (503, True)],
)
def test_status_codes_set_retryable_metadata(status_code: int, retryable: bool) -> None:
    err = failed_response_error(
        status_code=status_code,
        body="",
        headers={},
        provider="llamacpp.chat",
        phase="request",
        url=URL,
    )
    assert err.retryable is retryable
    assert str(err) == f"llamacpp.chat request failed (status={status_code})"


@pytest.mark.parametrize("status_code", [401, 403])
def test_auth_failures_hint_at_api_key(status_code: int) -> None:
    err = failed_response_error(
        status_code=status_code,
        body='{"error": {"code": 401, "message": "Invalid API Key", "type": "authentication_error"}}',
        headers={},
        provider="llamacpp.chat",
        phase="request",
        url=URL,
    )
    assert str(err) == "Invalid API Key"
    assert err.error_type == "authentication_error"
    assert err.hint is not None
    assert "LLAMACPP_API_KEY" in err.hint


def test_retry_after_makes_error_retryable() -> None:
    err = failed_response_error(
        status_code=400,
        body="",
        headers={"Retry-After": "1"},
        provider="llamacpp.chat",
        phase="request",
        url=URL,
    )
    assert err.retryable is True
    assert err.retry_after_s == 1.0


def test_long_error_body_is_truncated_in_message() -> None:
    body = "x" * 2000
    err = failed_response_error(
        status_code=500,
        body=body,
        headers={},
        provider="llamacpp.chat",
        phase="request",
        url=URL,
    )
    assert len(str(err)) < 600
    assert err.response_body == body


def test_timeout_is_retryable() -> None:
    request = httpx.Request("POST", URL)
    err = wrap_transport_error(
        httpx.ReadTimeout("timed out", request=request),
        provider="llamacpp.chat",
        phase="request",
        url=URL,
    )
    assert err.retryable is True
    assert err.url == URL
    assert "timed out" in str(err)


def test_existing_api_error_keeps_its_fields() -> None:
    original = RequestAbortedError("Request aborted", retryable=False)

    err = wrap_transport_error(original, provider="llamacpp.chat", phase="stream")

    assert err is original
    assert err.provider == "llamacpp.chat"
    assert err.phase == "stream"
    assert err.retryable is False


def test_cancellation_is_never_wrapped() -> None:
    with pytest.raises(asyncio.CancelledError):
        wrap_transport_error(
            asyncio.CancelledError(), provider="llamacpp.chat", phase="request"
        )
