"""Exception hierarchy for Castor."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping, Sequence


class CastorError(Exception):
    """Base exception for all Castor errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(CastorError):
    """Configuration or call option validation failed."""


class SchemaValidationError(ConfigurationError):
    """Backend-specific options failed schema validation.

    Raised before any network call is attempted.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        errors: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider
        self.errors = list(errors)


class APIError(CastorError):
    """HTTP call to the backend failed.

    Retry metadata is informational: Castor never retries on its own, but
    callers with a retry policy can decide without substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
        url: str | None = None,
        response_body: str | None = None,
        response_headers: Mapping[str, str] | None = None,
        error_type: str | None = None,
        error_code: int | str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase
        self.url = url
        self.response_body = response_body
        self.response_headers = dict(response_headers or {})
        self.error_type = error_type
        self.error_code = error_code


class RequestAbortedError(APIError):
    """The caller's abort signal fired before the call settled."""


class ChunkParseError(CastorError):
    """A single event-stream chunk could not be parsed.

    Delivered in-band as a stream ``error`` event, never raised.
    """

    def __init__(
        self, message: str, *, raw: str, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.raw = raw


class TooManyValuesError(CastorError):
    """Embedding call exceeded the per-call value limit."""

    def __init__(
        self,
        *,
        provider: str,
        model_id: str,
        max_embeddings_per_call: int,
        values: Sequence[str],
    ) -> None:
        super().__init__(
            f"Too many values for a single embedding call. The {provider} model "
            f"{model_id!r} can only embed up to {max_embeddings_per_call} values "
            f"per call, but {len(values)} values were provided.",
            hint="Split the input into batches no larger than the limit.",
        )
        self.provider = provider
        self.model_id = model_id
        self.max_embeddings_per_call = max_embeddings_per_call
        self.values = list(values)


class NoSuchModelError(CastorError):
    """The provider does not offer the requested model type."""

    def __init__(self, *, model_id: str, model_type: str) -> None:
        super().__init__(f"No such {model_type}: {model_id}")
        self.model_id = model_id
        self.model_type = model_type


class StreamConsumedError(CastorError):
    """An event stream was iterated more than once."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
