"""Normalize llama.cpp completion chunks into unified stream events."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from castor.errors import RequestAbortedError
from castor.finish_reason import map_finish_reason
from castor.models import (
    Finish,
    FinishReason,
    StreamError,
    StreamStart,
    TextDelta,
    TextEnd,
    Usage,
)

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncIterable, AsyncIterator, Sequence

    from castor._http import ParseResult
    from castor._schemas import CompletionChunk
    from castor.models import CallWarning, StreamEvent

logger = logging.getLogger(__name__)

#: The completion endpoint produces a single text block per stream.
TEXT_BLOCK_ID = "0"


def _check_abort(abort_signal: asyncio.Event | None, provider: str | None) -> None:
    if abort_signal is not None and abort_signal.is_set():
        raise RequestAbortedError(
            "Request aborted", retryable=False, provider=provider, phase="stream"
        )


async def normalize_stream(
    chunks: AsyncIterable[ParseResult[CompletionChunk]],
    warnings: Sequence[CallWarning] = (),
    *,
    abort_signal: asyncio.Event | None = None,
    provider: str | None = None,
) -> AsyncIterator[StreamEvent]:
    """Yield unified events for a stream of parsed completion chunks.

    Order is always: one ``StreamStart``, then ``TextDelta``/``StreamError``
    events in chunk order, then one ``TextEnd`` and one ``Finish``.

    A malformed chunk yields a ``StreamError`` and the stream continues.
    Usage is replaced, not summed, whenever a chunk carries ``timings``:
    llama.cpp reports cumulative counts.

    If *abort_signal* is set once the chunks run out, ``RequestAbortedError``
    is raised in place of ``TextEnd`` or ``Finish``.
    """
    yield StreamStart(warnings=tuple(warnings))

    finish_reason = FinishReason(unified="other")
    usage = Usage()
    async for chunk in chunks:
        if not chunk.success:
            yield StreamError(error=chunk.error)
            continue

        value = chunk.value
        if value.timings is not None:
            usage = Usage.from_counts(value.tokens_evaluated, value.tokens_predicted)
        if value.content:
            yield TextDelta(id=TEXT_BLOCK_ID, delta=value.content)
        if value.stop_type:
            finish_reason = map_finish_reason(value.stop_type)

    logger.debug(
        "Stream finished: reason=%s raw=%s usage=%s",
        finish_reason.unified,
        finish_reason.raw,
        usage,
    )
    _check_abort(abort_signal, provider)
    yield TextEnd(id=TEXT_BLOCK_ID)
    _check_abort(abort_signal, provider)
    yield Finish(finish_reason=finish_reason, usage=usage)
