"""Exceptions for prompt chain orchestration"""  # noqa: D415

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prompt_chain.core.types import LLMResponse


class PromptChainError(Exception):
    """Base exception for prompt chain errors"""  # noqa: D415


class ConfigurationError(PromptChainError, ValueError):
    """Raised when configuration values cannot be resolved or validated"""  # noqa: D415


class PromptNotFoundError(PromptChainError):
    """Raised when a prompt template does not exist for an area/key pair"""  # noqa: D415

    def __init__(self, prompt_area: str, prompt_key: str) -> None:
        self.prompt_area = prompt_area
        self.prompt_key = prompt_key
        super().__init__(
            f'Prompt not found for area="{prompt_area}" key="{prompt_key}"'
        )


class ProviderError(PromptChainError):
    """Raised (or carried in a Failure) when a model provider call fails.

    Attributes:
        service: The service kind that was being invoked, if known.
        retryable: Whether repeating the call may succeed.
    """

    def __init__(
        self,
        message: str,
        *,
        service: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.retryable = retryable


class CapabilityError(ProviderError):
    """Raised when an adapter does not support the requested service kind"""  # noqa: D415


class ChainedServiceError(ProviderError):
    """Raised (or carried in a Failure) when a step of a chained service fails.

    Attributes:
        partial: The image produced before the failing step, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        service: str | None = None,
        retryable: bool = False,
        partial: LLMResponse | None = None,
    ) -> None:
        super().__init__(message, service=service, retryable=retryable)
        self.partial = partial
