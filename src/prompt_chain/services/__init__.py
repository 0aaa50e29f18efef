"""Provider services and generation adapters."""  # noqa: D415

from .base import GenerationAdapter, GenerationRequest
from .generic import PromptServices, ServiceResult

__all__ = [
    "GenerationAdapter",
    "GenerationRequest",
    "PromptServices",
    "ServiceResult",
]
