"""Configuration: frozen provider settings resolved from arguments and environment."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from types import MappingProxyType
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from castor.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

load_dotenv()

API_KEY_ENV_VAR = "LLAMACPP_API_KEY"
BASE_URL_ENV_VAR = "LLAMACPP_BASE_URL"
DEFAULT_BASE_URL = "http://127.0.0.1:8080"
DEFAULT_TIMEOUT_S = 600.0


@dataclass(frozen=True)
class ProviderSettings:
    """Immutable settings for a llama.cpp provider.

    The API key is optional: llama.cpp servers only check it when started
    with ``--api-key``. When *api_key* is None it is looked up in
    ``LLAMACPP_API_KEY`` each time headers are built.

    Example:
        settings = ProviderSettings(base_url="http://gpu-box:8080/")
        # settings.base_url == "http://gpu-box:8080"
    """

    #: Falls back to ``LLAMACPP_BASE_URL``, then ``http://127.0.0.1:8080``.
    base_url: str | None = None
    api_key: str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    #: Overall HTTP timeout; None disables it (long generations).
    timeout_s: float | None = DEFAULT_TIMEOUT_S

    def __post_init__(self) -> None:
        """Resolve the base URL and validate configuration."""
        base_url = self.base_url or os.environ.get(BASE_URL_ENV_VAR) or DEFAULT_BASE_URL
        if not base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"base_url must be an http(s) URL, got {base_url!r}",
                hint="Pass base_url='http://127.0.0.1:8080' or set LLAMACPP_BASE_URL.",
            )
        object.__setattr__(self, "base_url", base_url.rstrip("/"))

        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0 or None, got {self.timeout_s}",
                hint="Use timeout_s=None to wait indefinitely for long generations.",
            )

        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def resolve_api_key(self) -> str | None:
        """Return the explicit API key, else the environment value, else None."""
        if self.api_key:
            return self.api_key
        return os.environ.get(API_KEY_ENV_VAR) or None

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"ProviderSettings(base_url={self.base_url!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"timeout_s={self.timeout_s!r})"
        )

    __repr__ = __str__
