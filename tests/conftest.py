"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, and an HTTP transport
spy so tests exercise the real httpx client without a llama.cpp server.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
import json
import logging
import os
from typing import Any

import httpx
import pytest

from castor import create_llamacpp
from castor.provider import LlamacppProvider

BASE_URL = "http://llama.test"

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class TransportSpy:
    """Records every request and replies with queued responses.

    Queue ``httpx.Response`` objects (or callables taking the request) with
    ``reply()``; when the queue is empty the spy answers with an empty
    successful completion.
    """

    requests: list[httpx.Request] = field(default_factory=list)
    _replies: list[httpx.Response | Callable[[httpx.Request], httpx.Response]] = field(
        default_factory=list
    )

    def reply(
        self, response: httpx.Response | Callable[[httpx.Request], httpx.Response]
    ) -> None:
        self._replies.append(response)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._replies:
            return httpx.Response(200, json={"content": "", "stop_type": None})
        reply = self._replies.pop(0)
        return reply(request) if callable(reply) else reply

    @property
    def calls(self) -> int:
        return len(self.requests)

    def body(self, idx: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[idx].content)


def sse(*events: dict[str, Any] | str) -> bytes:
    """Encode events as a llama.cpp server-sent event stream body.

    Dicts are JSON-encoded; strings are sent verbatim as the data payload.
    """
    out: list[str] = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        out.append(f"data: {payload}\n\n")
    return "".join(out).encode()


def sse_response(*events: dict[str, Any] | str) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse(*events),
        headers={"content-type": "text/event-stream"},
    )


@pytest.fixture
def spy() -> TransportSpy:
    return TransportSpy()


@pytest.fixture
def make_provider(spy: TransportSpy) -> Callable[..., LlamacppProvider]:
    """Build providers whose HTTP traffic goes through ``spy``."""

    def _make(**kwargs: Any) -> LlamacppProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(spy))
        kwargs.setdefault("base_url", BASE_URL)
        return create_llamacpp(http_client=client, **kwargs)

    return _make


@pytest.fixture
def provider(make_provider: Callable[..., LlamacppProvider]) -> LlamacppProvider:
    return make_provider()


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_llamacpp_env(request, monkeypatch):
    """Clear LLAMACPP_* env vars so a developer's server config never leaks in.

    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("LLAMACPP_"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
