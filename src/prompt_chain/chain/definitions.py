"""Authoring models for static chain steps."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from prompt_chain.core.types import ServiceType

MatchType = Literal["direct", "call_chain"]


class ChainFieldDefinition(BaseModel):
    """Where a step input comes from.

    ``direct`` uses `value` verbatim. ``call_chain`` treats `value` as a
    reference such as ``call[0].tax_category`` into an earlier step's result.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    match_type: MatchType
    value: str
    variable_name: str | None = None

    @classmethod
    def direct(cls, value: str) -> ChainFieldDefinition:
        return cls(match_type="direct", value=value)

    @classmethod
    def call_chain(cls, reference: str) -> ChainFieldDefinition:
        return cls(match_type="call_chain", value=reference)


class ChainVariableDefinition(ChainFieldDefinition):
    """A field definition that fills the template variable `variable_name`."""

    @classmethod
    def named(
        cls, variable_name: str, value: str, match_type: MatchType = "direct"
    ) -> ChainVariableDefinition:
        return cls(match_type=match_type, value=value, variable_name=variable_name)


class ChainImageDefinition(BaseModel):
    """An image input assembled from two field definitions."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    image_b64: ChainFieldDefinition
    image_mime_type: ChainFieldDefinition


def _coerce_field(value: Any) -> Any:
    # A bare string is shorthand for a direct literal
    if isinstance(value, str):
        return {"match_type": "direct", "value": value}
    return value


class ChainCallDefinition(BaseModel):
    """One step of a static chain."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    prompt_area: ChainFieldDefinition
    prompt_key: ChainFieldDefinition
    call_type: ServiceType = ServiceType.TEXT_TEXT
    image_b64: ChainFieldDefinition | None = None
    image_mime_type: ChainFieldDefinition | None = None
    images: list[ChainImageDefinition] | None = None
    variables: list[ChainVariableDefinition] | None = None

    @field_validator("prompt_area", "prompt_key", "image_b64", "image_mime_type", mode="before")
    @classmethod
    def _shorthand_literal(cls, value: Any) -> Any:
        return _coerce_field(value)
