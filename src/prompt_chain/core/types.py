"""Core data types that flow through the chain runners.

This module defines the immutable records produced and consumed while a chain
executes: the provider-boundary `Result` type, the JSON value alias, the
service kinds, and the per-step result records that make up a runner's
response. Every record is created once and never mutated afterwards.
"""

from __future__ import annotations

import dataclasses
import enum
import typing

# --- JSON values ---

type JsonValue = (
    None | bool | int | float | str | list[JsonValue] | dict[str, JsonValue]
)
type JsonObject = dict[str, JsonValue]

# --- Result Monad for the provider boundary ---
# Provider calls return Success|Failure instead of raising so the runners can
# record every failure as a step entry without broad try/except blocks.

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success[TSuccess]:
    """A successful provider call."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure[TFailure]:
    """A failed provider call, containing the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]


# --- Enumerations ---


class ServiceType(enum.StrEnum):
    """The four generic service kinds a chain step can invoke."""

    TEXT_TEXT = "text_text"
    IMAGE_TEXT = "image_text"
    TEXT_IMAGE = "text_image"
    IMAGE_IMAGE = "image_image"

    @property
    def produces_text(self) -> bool:
        return self in (ServiceType.TEXT_TEXT, ServiceType.IMAGE_TEXT)

    @property
    def produces_image(self) -> bool:
        return self in (ServiceType.TEXT_IMAGE, ServiceType.IMAGE_IMAGE)

    @property
    def consumes_images(self) -> bool:
        return self in (ServiceType.IMAGE_TEXT, ServiceType.IMAGE_IMAGE)


class StopReason(enum.StrEnum):
    """Terminal classification of why a dynamic chain ended."""

    NO_NEXT_PROMPT = "no_next_prompt"
    MAX_DEPTH = "max_depth"
    ERROR = "error"
    NEXT_PROMPT_NOT_FOUND = "next_prompt_not_found"


ResolutionType = typing.Literal["simple", "branch", "default"]


# --- Provider-facing records ---


@dataclasses.dataclass(frozen=True, slots=True)
class ImagePart:
    """Base64-encoded image (or document) data with its MIME type."""

    data: str
    mime_type: str


@dataclasses.dataclass(frozen=True, slots=True)
class PromptRecord:
    """A stored prompt template.

    `next_prompt` holds the routing rule for dynamic chains, either as the raw
    JSON text it was persisted as or as an already-decoded mapping.
    """

    prompt_area: str
    prompt_key: str
    prompt_text: str
    next_prompt: str | typing.Mapping[str, typing.Any] | None = None
    prompt_variables: str | None = None
    prompt_notes: str | None = None
    uuid: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class LLMResponse:
    """Generic response from a generation adapter."""

    success: bool
    text: str | None = None
    image_b64: str | None = None
    image_mime_type: str | None = None
    error: str | None = None
    raw_response: typing.Any = dataclasses.field(default=None, repr=False)


@dataclasses.dataclass(frozen=True, slots=True)
class ServiceParams:
    """Parameter bag handed to a generic service.

    `prompt` is used verbatim unless both `prompt_area` and `prompt_key` are
    set, in which case the prompt text is looked up in the prompt store.
    """

    prompt: str = ""
    prompt_area: str | None = None
    prompt_key: str | None = None
    prompt_variables: typing.Mapping[str, str] = dataclasses.field(
        default_factory=dict
    )
    images: tuple[ImagePart, ...] = ()

    def with_prompt_source(self, prompt_area: str, prompt_key: str) -> ServiceParams:
        return dataclasses.replace(self, prompt_area=prompt_area, prompt_key=prompt_key)


# --- Chain outcome records ---


class ChainCallError(typing.TypedDict):
    call_index: int
    error: str
    # Present, and True, only when the provider reported a transient failure
    retryable: typing.NotRequired[bool]


class StepError(typing.TypedDict):
    step_index: int
    error: str
    retryable: typing.NotRequired[bool]


def _compact(data: dict[str, typing.Any]) -> dict[str, typing.Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclasses.dataclass(frozen=True, slots=True)
class ResolvedNextPrompt:
    """The cursor a routing rule resolved to."""

    prompt_area: str
    prompt_key: str
    resolution_type: ResolutionType
    branch_index: int | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class ChainCallResult:
    """Outcome of one static chain step."""

    call_index: int
    success: bool
    prompt_area: str
    prompt_key: str
    raw_text: str | None = None
    parsed_result: JsonValue = None
    image_b64: str | None = None
    image_mime_type: str | None = None
    error: str | None = None
    retryable: bool | None = None

    def to_dict(self) -> dict[str, typing.Any]:
        return _compact(
            {
                "call_index": self.call_index,
                "success": self.success,
                "prompt_area": self.prompt_area,
                "prompt_key": self.prompt_key,
                "raw_text": self.raw_text,
                "parsed_result": self.parsed_result,
                "image_b64": self.image_b64,
                "image_mime_type": self.image_mime_type,
                "error": self.error,
                "retryable": self.retryable,
            }
        )


@dataclasses.dataclass(frozen=True, slots=True)
class NextPromptResolution:
    """How a dynamic step's routing rule was (or was not) resolved."""

    config: JsonObject | None = None
    resolved_area: str | None = None
    resolved_key: str | None = None
    matched_branch: ResolutionType | None = None
    branch_index: int | None = None

    @property
    def resolved(self) -> bool:
        return bool(self.resolved_area and self.resolved_key)

    def to_dict(self) -> dict[str, typing.Any]:
        return _compact(dataclasses.asdict(self)) | {"config": self.config}


@dataclasses.dataclass(frozen=True, slots=True)
class DynamicExtractStepResult:
    """Outcome of one dynamic chain step."""

    step_index: int
    success: bool
    prompt_area: str
    prompt_key: str
    raw_text: str | None = None
    parsed_result: JsonValue = None
    error: str | None = None
    next_prompt_resolution: NextPromptResolution | None = None

    def to_dict(self) -> dict[str, typing.Any]:
        resolution = (
            self.next_prompt_resolution.to_dict()
            if self.next_prompt_resolution is not None
            else None
        )
        return _compact(
            {
                "step_index": self.step_index,
                "success": self.success,
                "prompt_area": self.prompt_area,
                "prompt_key": self.prompt_key,
                "raw_text": self.raw_text,
                "parsed_result": self.parsed_result,
                "error": self.error,
                "next_prompt_resolution": resolution,
            }
        )


@dataclasses.dataclass(frozen=True, slots=True)
class PromptChainResponse:
    """Final response of a static chain run."""

    success: bool
    merged_result: JsonObject
    call_results: tuple[ChainCallResult, ...]
    errors: tuple[ChainCallError, ...]
    total_calls: int
    successful_calls: int

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "success": self.success,
            "merged_result": self.merged_result,
            "call_results": [r.to_dict() for r in self.call_results],
            "errors": [dict(e) for e in self.errors],
            "total_calls": self.total_calls,
            "successful_calls": self.successful_calls,
        }


@dataclasses.dataclass(frozen=True, slots=True)
class DynamicDataExtractResponse:
    """Final response of a dynamic extract run."""

    success: bool
    merged_result: JsonObject
    step_results: tuple[DynamicExtractStepResult, ...]
    errors: tuple[StepError, ...]
    total_steps: int
    successful_steps: int
    final_stop_reason: StopReason

    def to_dict(self) -> dict[str, typing.Any]:
        return {
            "success": self.success,
            "merged_result": self.merged_result,
            "step_results": [r.to_dict() for r in self.step_results],
            "errors": [dict(e) for e in self.errors],
            "total_steps": self.total_steps,
            "successful_steps": self.successful_steps,
            "final_stop_reason": self.final_stop_reason.value,
        }
