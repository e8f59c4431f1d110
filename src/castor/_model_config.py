"""Wiring shared by chat and embedding models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    import httpx


@dataclass(frozen=True)
class ModelConfig:
    """What a model needs from its provider: where, which headers, which client."""

    provider: str
    base_url: str
    headers: Callable[[], dict[str, str]]
    client: Callable[[], httpx.AsyncClient]


def combine_headers(
    base: Mapping[str, str], overrides: Mapping[str, str | None] | None
) -> dict[str, str]:
    """Merge per-call headers over provider headers; ``None`` removes a header.

    Header names compare case-insensitively; the override's spelling wins.
    """
    merged = dict(base)
    for name, value in (overrides or {}).items():
        for existing in [k for k in merged if k.lower() == name.lower()]:
            del merged[existing]
        if value is not None:
            merged[name] = value
    return merged
