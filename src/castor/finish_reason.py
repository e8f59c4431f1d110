"""Map llama.cpp ``stop_type`` tags to unified finish reasons."""

from __future__ import annotations

from types import MappingProxyType

from castor.models import FinishReason, UnifiedFinishReason

_STOP_TYPES: MappingProxyType[str, UnifiedFinishReason] = MappingProxyType(
    {
        "eos": "stop",
        "limit": "length",
        "word": "stop",
        "none": "other",
    }
)


def map_finish_reason(stop_type: str | None) -> FinishReason:
    """Return the unified finish reason for a backend stop tag.

    Total over its input: unknown tags and ``None`` map to ``"other"``. The
    raw tag is kept as given.
    """
    unified = _STOP_TYPES.get(stop_type, "other") if stop_type else "other"
    return FinishReason(unified=unified, raw=stop_type)
