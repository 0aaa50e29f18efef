"""Adapter protocol between the generic services and a model vendor."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from prompt_chain.core.types import ImagePart, LLMResponse, ServiceType


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """A fully prepared request: final prompt text plus any input images."""

    service: ServiceType
    prompt: str
    images: tuple[ImagePart, ...] = ()


@runtime_checkable
class GenerationAdapter(Protocol):
    """Vendor-specific generation.

    Adapters may raise on transport errors or return an unsuccessful
    `LLMResponse`; the services normalize both into a `Failure`.
    """

    name: str
    capabilities: frozenset[ServiceType]

    async def generate(self, request: GenerationRequest) -> LLMResponse: ...
