"""Backend-agnostic request, result, and stream event types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Union

from castor.errors import ConfigurationError, StreamConsumedError

if TYPE_CHECKING:
    import asyncio
    from collections.abc import AsyncIterator, Mapping, Sequence

    from castor.errors import CastorError

Role = Literal["system", "user", "assistant"]
UnifiedFinishReason = Literal["stop", "length", "other"]

_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})


@dataclass(frozen=True)
class TextPart:
    """A text segment of a prompt turn."""

    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class FilePart:
    """A binary or URL segment of a prompt turn.

    The completion endpoint is text-only; these parts are dropped when the
    prompt is flattened.
    """

    data: bytes | str
    media_type: str
    type: Literal["file"] = "file"


Part = Union[TextPart, FilePart]


@dataclass(frozen=True)
class Message:
    """A single prompt turn."""

    role: Role
    content: str | Sequence[Part] = ""


@dataclass(frozen=True)
class CallOptions:
    """Backend-agnostic options for one generation call."""

    prompt: Sequence[Message]
    max_output_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    stop_sequences: Sequence[str] | None = None
    seed: int | None = None
    #: Not supported by the completion endpoint; reported as warnings.
    tools: Sequence[Mapping[str, Any]] | None = None
    tool_choice: str | Mapping[str, Any] | None = None
    #: Set the event to abort the call cooperatively.
    abort_signal: asyncio.Event | None = None
    #: Per-call headers; a ``None`` value removes a provider header.
    headers: Mapping[str, str | None] | None = None
    #: Backend option bags keyed by provider name (``"llamacpp"``).
    provider_options: Mapping[str, Mapping[str, Any]] | None = None

    def __post_init__(self) -> None:
        """Validate prompt and stop sequence shapes early for clear errors."""
        if isinstance(self.prompt, (str, bytes)):
            raise ConfigurationError(
                "prompt must be a sequence of Message turns",
                hint="Pass prompt=[Message(role='user', content='Hello')].",
            )
        for turn in self.prompt:
            if not isinstance(turn, Message) or turn.role not in _ROLES:
                raise ConfigurationError(
                    f"Invalid prompt turn: {turn!r}",
                    hint="Each turn must be a Message with role "
                    "'system', 'user' or 'assistant'.",
                )
        if isinstance(self.stop_sequences, (str, bytes)):
            raise ConfigurationError(
                "stop_sequences must be a sequence of strings",
                hint=f"Pass stop_sequences=[{self.stop_sequences!r}].",
            )


@dataclass(frozen=True)
class CallWarning:
    """A non-fatal note about how the call was translated."""

    type: Literal["unsupported-setting", "other"]
    setting: str | None = None
    details: str | None = None


@dataclass(frozen=True)
class FinishReason:
    """Unified finish reason plus the backend's raw stop tag."""

    unified: UnifiedFinishReason
    raw: str | None = None


@dataclass(frozen=True)
class Usage:
    """Token usage; ``None`` means the backend has not reported a count."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    @classmethod
    def from_counts(
        cls, input_tokens: int | None, output_tokens: int | None
    ) -> Usage:
        """Build usage, deriving the total only when both counts are known."""
        total = (
            input_tokens + output_tokens
            if input_tokens is not None and output_tokens is not None
            else None
        )
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total,
        )


@dataclass(frozen=True)
class TextContent:
    """A text content block of a result."""

    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class RawResponse:
    """Opaque response envelope for callers needing backend detail."""

    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class GenerateResult:
    """Result of a single non-streaming generation call."""

    content: tuple[TextContent, ...]
    finish_reason: FinishReason
    usage: Usage
    warnings: tuple[CallWarning, ...] = ()
    request_body: Mapping[str, Any] | None = None
    response: RawResponse = field(default_factory=RawResponse)

    @property
    def text(self) -> str:
        """Concatenated text of all content blocks."""
        return "".join(block.text for block in self.content)


@dataclass(frozen=True)
class StreamStart:
    """First event of every stream."""

    warnings: tuple[CallWarning, ...] = ()
    type: Literal["stream-start"] = "stream-start"


@dataclass(frozen=True)
class TextDelta:
    """Incremental text for content block *id*."""

    id: str
    delta: str
    type: Literal["text-delta"] = "text-delta"


@dataclass(frozen=True)
class TextEnd:
    """Content block *id* is complete."""

    id: str
    type: Literal["text-end"] = "text-end"


@dataclass(frozen=True)
class StreamError:
    """In-band error; the stream continues after it."""

    error: CastorError
    type: Literal["error"] = "error"


@dataclass(frozen=True)
class Finish:
    """Last event of every stream."""

    finish_reason: FinishReason
    usage: Usage
    type: Literal["finish"] = "finish"


StreamEvent = Union[StreamStart, TextDelta, TextEnd, StreamError, Finish]


class EventStream:
    """Single-pass async iterator over stream events.

    Iterating a second time raises ``StreamConsumedError``; events are not
    buffered for replay.
    """

    def __init__(self, events: AsyncIterator[StreamEvent]) -> None:
        self._events = events
        self._consumed = False

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._consumed:
            raise StreamConsumedError(
                "Event stream was already consumed",
                hint="Collect events during the first iteration if you need them again.",
            )
        self._consumed = True
        return self._events

    async def aclose(self) -> None:
        """Close the underlying stream and its HTTP response."""
        aclose = getattr(self._events, "aclose", None)
        if aclose is not None:
            await aclose()


@dataclass(frozen=True)
class StreamResult:
    """Result of opening a streaming generation call."""

    stream: EventStream
    request_body: Mapping[str, Any] | None = None
    response_headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class EmbeddingUsage:
    """Token usage for an embedding call."""

    tokens: int


@dataclass(frozen=True)
class EmbedResult:
    """Result of an embedding call, one vector per input value."""

    embeddings: list[list[float]]
    usage: EmbeddingUsage | None = None
    response: RawResponse = field(default_factory=RawResponse)
    warnings: tuple[CallWarning, ...] = ()
