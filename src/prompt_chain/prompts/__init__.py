"""Prompt templates: storage and variable substitution."""

from .store import InMemoryPromptStore, PromptStore
from .substitution import (
    find_variables,
    parse_prompt_variables,
    substitute_variables,
    validate_variables,
)

__all__ = [
    "InMemoryPromptStore",
    "PromptStore",
    "find_variables",
    "parse_prompt_variables",
    "substitute_variables",
    "validate_variables",
]
