"""Prompt chain orchestration for generative models."""

import importlib.metadata
import logging

from prompt_chain.chain import (
    ChainCallDefinition,
    ChainContext,
    ChainFieldDefinition,
    ChainImageDefinition,
    ChainVariableDefinition,
    run_dynamic_extract,
    run_static_chain,
)
from prompt_chain.config import FrozenConfig, ResolvedConfig, resolve_config
from prompt_chain.core.branching import Branch, Condition, NextPromptConfig
from prompt_chain.core.types import (
    ChainCallResult,
    DynamicDataExtractResponse,
    DynamicExtractStepResult,
    Failure,
    ImagePart,
    LLMResponse,
    PromptChainResponse,
    PromptRecord,
    Result,
    ServiceParams,
    ServiceType,
    StopReason,
    Success,
)
from prompt_chain.exceptions import (
    CapabilityError,
    ChainedServiceError,
    ConfigurationError,
    PromptChainError,
    PromptNotFoundError,
    ProviderError,
)
from prompt_chain.prompts import InMemoryPromptStore, PromptStore
from prompt_chain.services import GenerationAdapter, GenerationRequest, PromptServices
from prompt_chain.telemetry import InMemoryReporter, TelemetryContext, TelemetryReporter

try:
    __version__ = importlib.metadata.version("prompt-chain")
except importlib.metadata.PackageNotFoundError:
    __version__ = "development"

# Library default: no output unless the application configures logging
logging.getLogger(__name__).addHandler(logging.NullHandler())

_HANDLER_NAME = "prompt_chain.console"


def configure_logging(level: int | str | None = None) -> logging.Logger:
    """Attach a console handler to the package logger.

    Calling this again only updates the level. Without `level`, the resolved
    ``log_level`` setting is used.
    """
    if level is None:
        level = resolve_config().log_level
    if isinstance(level, str):
        level = level.upper()

    logger = logging.getLogger(__name__)
    logger.setLevel(level)
    if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(handler)
    return logger


__all__ = [  # noqa: RUF022
    # Runners
    "ChainContext",
    "run_static_chain",
    "run_dynamic_extract",
    # Authoring models
    "ChainCallDefinition",
    "ChainFieldDefinition",
    "ChainImageDefinition",
    "ChainVariableDefinition",
    "Branch",
    "Condition",
    "NextPromptConfig",
    # Records
    "ChainCallResult",
    "DynamicDataExtractResponse",
    "DynamicExtractStepResult",
    "ImagePart",
    "LLMResponse",
    "PromptChainResponse",
    "PromptRecord",
    "ServiceParams",
    "ServiceType",
    "StopReason",
    "Result",
    "Success",
    "Failure",
    # Prompts and services
    "InMemoryPromptStore",
    "PromptStore",
    "GenerationAdapter",
    "GenerationRequest",
    "PromptServices",
    # Configuration
    "FrozenConfig",
    "ResolvedConfig",
    "resolve_config",
    "configure_logging",
    # Telemetry
    "InMemoryReporter",
    "TelemetryContext",
    "TelemetryReporter",
    # Exceptions
    "CapabilityError",
    "ChainedServiceError",
    "ConfigurationError",
    "PromptChainError",
    "PromptNotFoundError",
    "ProviderError",
]
