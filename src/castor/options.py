"""Backend option schemas and call option resolution.

``resolve_call_options`` turns backend-agnostic ``CallOptions`` into the JSON
body of a llama.cpp ``/completion`` request. Per field the precedence is:
llama.cpp option, then generic call option, then default. ``extra_params``
is merged last and overrides everything, including other llama.cpp options.
"""

from __future__ import annotations

from collections.abc import Mapping
import copy
from dataclasses import dataclass
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, TypeVar, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from castor.errors import SchemaValidationError
from castor.models import CallWarning, TextPart

if TYPE_CHECKING:
    from collections.abc import Sequence

    from castor.models import CallOptions, Message

logger = logging.getLogger(__name__)

PROVIDER_OPTIONS_KEY = "llamacpp"

_SchemaT = TypeVar("_SchemaT", bound=BaseModel)


class _OptionsModel(BaseModel):
    """Shared config: frozen, snake_case names with camelCase aliases.

    Scalar fields use strict types: ``"7"`` is not an int and ``"yes"`` is not
    a bool. Ints are still accepted where a float is expected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class LoraAdapter(_OptionsModel):
    """A LoRA adapter applied to one request."""

    id: StrictInt
    scale: StrictFloat


LogitBias = Union[
    dict[str, Union[StrictFloat, StrictBool]],
    list[tuple[Union[StrictInt, StrictStr], Union[StrictFloat, StrictBool]]],
]


class LlamacppLanguageModelOptions(_OptionsModel):
    """Options accepted under ``provider_options["llamacpp"]``."""

    # basic sampling
    temperature: StrictFloat | None = None
    top_p: StrictFloat | None = None
    top_k: StrictInt | None = None
    seed: StrictInt | None = None

    # sampling / decoding
    n_predict: StrictInt | None = None
    dynatemp_range: StrictFloat | None = None
    dynatemp_exponent: StrictFloat | None = None
    min_p: StrictFloat | None = None
    top_n_sigma: StrictFloat | None = None
    xtc_probability: StrictFloat | None = None
    xtc_threshold: StrictFloat | None = None
    typical_p: StrictFloat | None = None
    repeat_last_n: StrictInt | None = None
    repeat_penalty: StrictFloat | None = None
    dry_multiplier: StrictFloat | None = None
    dry_base: StrictFloat | None = None
    dry_allowed_length: StrictInt | None = None
    dry_penalty_last_n: StrictInt | None = None
    dry_sequence_breakers: list[StrictStr] | None = None
    mirostat: StrictInt | None = None
    mirostat_tau: StrictFloat | None = None
    mirostat_eta: StrictFloat | None = None
    min_keep: StrictInt | None = None
    n_probs: StrictInt | None = None
    samplers: list[StrictStr] | None = None
    post_sampling_probs: StrictBool | None = None

    # control & constraints
    grammar: StrictStr | None = None
    json_schema: Any = None
    logit_bias: LogitBias | None = None
    ignore_eos: StrictBool | None = None
    t_max_predict_ms: StrictInt | None = None
    stop: list[StrictStr] | None = None
    n_keep: StrictInt | None = None
    n_indent: StrictInt | None = None
    presence_penalty: StrictFloat | None = None
    frequency_penalty: StrictFloat | None = None

    # execution / caching
    id_slot: StrictInt | None = None
    cache_prompt: StrictBool | None = None
    return_tokens: StrictBool | None = None
    timings_per_token: StrictBool | None = None
    return_progress: StrictBool | None = None

    # LoRA & advanced
    lora: list[LoraAdapter] | None = None
    response_fields: list[StrictStr] | None = None

    #: Merged last into the request body, for fields not modeled above.
    extra_params: dict[str, Any] | None = None


class LlamacppEmbeddingOptions(_OptionsModel):
    """Options accepted under ``provider_options["llamacpp"]`` for embeddings."""

    embd_normalize: StrictInt | None = None
    #: Accepted for option-bag compatibility; the limit is fixed per model
    #: via ``LlamacppProvider.embedding(max_embeddings_per_call=...)``.
    max_embeddings_per_call: StrictInt | None = None


# Wire field, llama.cpp option attribute, generic CallOptions attribute.
# Adding a sampling parameter is one row here plus one schema field.
_COMPLETION_FIELDS: tuple[tuple[str, str, str | None], ...] = (
    ("n_predict", "n_predict", "max_output_tokens"),
    ("temperature", "temperature", "temperature"),
    ("top_p", "top_p", "top_p"),
    ("top_k", "top_k", "top_k"),
    ("stop", "stop", "stop_sequences"),
    ("seed", "seed", "seed"),
    ("presence_penalty", "presence_penalty", "presence_penalty"),
    ("frequency_penalty", "frequency_penalty", "frequency_penalty"),
    ("dynatemp_range", "dynatemp_range", None),
    ("dynatemp_exponent", "dynatemp_exponent", None),
    ("min_p", "min_p", None),
    ("top_n_sigma", "top_n_sigma", None),
    ("xtc_probability", "xtc_probability", None),
    ("xtc_threshold", "xtc_threshold", None),
    ("typical_p", "typical_p", None),
    ("repeat_last_n", "repeat_last_n", None),
    ("repeat_penalty", "repeat_penalty", None),
    ("dry_multiplier", "dry_multiplier", None),
    ("dry_base", "dry_base", None),
    ("dry_allowed_length", "dry_allowed_length", None),
    ("dry_penalty_last_n", "dry_penalty_last_n", None),
    ("dry_sequence_breakers", "dry_sequence_breakers", None),
    ("mirostat", "mirostat", None),
    ("mirostat_tau", "mirostat_tau", None),
    ("mirostat_eta", "mirostat_eta", None),
    ("min_keep", "min_keep", None),
    ("n_probs", "n_probs", None),
    ("samplers", "samplers", None),
    ("post_sampling_probs", "post_sampling_probs", None),
    ("grammar", "grammar", None),
    ("json_schema", "json_schema", None),
    ("logit_bias", "logit_bias", None),
    ("ignore_eos", "ignore_eos", None),
    ("t_max_predict_ms", "t_max_predict_ms", None),
    ("n_keep", "n_keep", None),
    ("n_indent", "n_indent", None),
    ("id_slot", "id_slot", None),
    ("cache_prompt", "cache_prompt", None),
    ("return_tokens", "return_tokens", None),
    ("timings_per_token", "timings_per_token", None),
    ("return_progress", "return_progress", None),
    ("lora", "lora", None),
    ("response_fields", "response_fields", None),
)

_DEFAULTS: MappingProxyType[str, Any] = MappingProxyType(
    {
        "n_predict": -1,  # unbounded
    }
)


@dataclass(frozen=True)
class ResolvedRequest:
    """Wire-ready request body plus translation warnings.

    ``body`` is a read-only view over a deep copy of the caller's values;
    use ``as_json()`` for a mutable copy.
    """

    body: Mapping[str, Any]
    warnings: tuple[CallWarning, ...] = ()

    def with_stream(self) -> ResolvedRequest:
        """Return a copy of this request with event-stream mode enabled."""
        return ResolvedRequest(
            body=MappingProxyType({**self.body, "stream": True}),
            warnings=self.warnings,
        )

    def as_json(self) -> dict[str, Any]:
        """Return a deep copy of the body as a plain dict."""
        return copy.deepcopy(dict(self.body))


def parse_provider_options(
    provider_options: Mapping[str, Mapping[str, Any]] | None,
    schema: type[_SchemaT],
    *,
    provider: str = PROVIDER_OPTIONS_KEY,
) -> _SchemaT:
    """Validate the option bag for *provider* against *schema*.

    A missing bag validates as all defaults.
    """
    bag = (provider_options or {}).get(provider)
    if bag is None:
        bag = {}
    elif isinstance(bag, Mapping):
        bag = dict(bag)
    try:
        return schema.model_validate(bag)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise SchemaValidationError(
            f"Invalid {provider} provider options: {', '.join(fields)}",
            hint="Check option names and types; put unmodeled fields in extra_params.",
            provider=provider,
            errors=e.errors(include_url=False),
        ) from e


def flatten_prompt(prompt: Sequence[Message]) -> str:
    """Flatten prompt turns into the single text blob llama.cpp expects.

    Turns are joined with newlines. Only text parts survive; file parts are
    dropped.
    """
    lines: list[str] = []
    for message in prompt:
        content = message.content
        if isinstance(content, str):
            lines.append(content)
            continue
        lines.append(
            "".join(part.text for part in content if isinstance(part, TextPart))
        )
    return "\n".join(lines)


def _collect_warnings(options: CallOptions) -> list[CallWarning]:
    warnings: list[CallWarning] = []
    if options.tools is not None:
        warnings.append(CallWarning(type="unsupported-setting", setting="tools"))
    if options.tool_choice is not None:
        warnings.append(CallWarning(type="unsupported-setting", setting="tool_choice"))
    return warnings


def _to_wire(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, (list, tuple)):
        return [_to_wire(v) for v in value]
    return value


def resolve_call_options(options: CallOptions) -> ResolvedRequest:
    """Resolve call options into a ``/completion`` request body.

    Raises:
        SchemaValidationError: If the llama.cpp option bag is invalid.
    """
    llamacpp = parse_provider_options(
        options.provider_options, LlamacppLanguageModelOptions
    )
    warnings = _collect_warnings(options)

    body: dict[str, Any] = {"prompt": flatten_prompt(options.prompt)}
    for wire, option_attr, call_attr in _COMPLETION_FIELDS:
        value = getattr(llamacpp, option_attr)
        if value is None and call_attr is not None:
            value = getattr(options, call_attr)
        if value is None:
            value = _DEFAULTS.get(wire)
        if value is not None:
            body[wire] = _to_wire(value)

    if llamacpp.extra_params:
        body.update(llamacpp.extra_params)

    if warnings:
        logger.debug(
            "Unsupported settings ignored: %s", ", ".join(w.setting or "" for w in warnings)
        )
    return ResolvedRequest(
        body=MappingProxyType(copy.deepcopy(body)), warnings=tuple(warnings)
    )
