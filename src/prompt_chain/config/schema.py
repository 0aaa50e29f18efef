"""Settings schema for prompt chain configuration.

Validates and coerces values gathered from every configuration source into
their final types. Environment variables use the ``PROMPT_CHAIN_`` prefix.
"""

import logging
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


class PromptChainSettings(BaseSettings):
    """Pydantic settings schema for chain execution and the Gemini adapter."""

    model_config = SettingsConfigDict(
        env_prefix="PROMPT_CHAIN_",
        env_file=None,  # Only used when explicitly requested
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str | None = Field(default=None, description="Google Gemini API key")

    model: str = Field(
        default="gemini-2.0-flash",
        description="Model used by text-producing services",
        min_length=1,
    )

    image_model: str = Field(
        default="gemini-2.0-flash-preview-image-generation",
        description="Model used by image-producing services",
        min_length=1,
    )

    max_depth: int = Field(
        default=10,
        description="Step budget for dynamic extract chains",
        ge=1,
    )

    chain_continue_on_error: bool = Field(
        default=True,
        description="Whether static chains keep going after a failed step",
    )

    extract_continue_on_error: bool = Field(
        default=False,
        description="Whether dynamic chains keep going after a failed step",
    )

    log_level: str = Field(
        default="WARNING",
        description="Level for configure_logging() when none is given",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        level = str(v).strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level: {v}. Must be one of: "
                f"{', '.join(sorted(_LOG_LEVELS))}"
            )
        return level

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(cls.model_fields)

    @classmethod
    def defaults(cls) -> dict[str, Any]:
        """Schema defaults, without reading the environment."""
        return {
            name: field.get_default(call_default_factory=True)
            for name, field in cls.model_fields.items()
        }

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.field_names()}
