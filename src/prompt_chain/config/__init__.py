"""Configuration for prompt chain execution.

Resolve once, freeze, then pass the frozen config along:

- `resolve_config()` merges programmatic values, ``PROMPT_CHAIN_*``
  environment variables, ``[tool.prompt_chain]`` in pyproject.toml, the home
  file and defaults into a `ResolvedConfig` with a source map.
- `ResolvedConfig.to_frozen()` yields the immutable `FrozenConfig` carried by
  a `ChainContext`.
"""

from .api import (
    check_environment,
    get_effective_profile,
    list_available_profiles,
    resolve_config,
    validate_profile,
)
from .audit import SourceTracker, summarize_origins
from .file_loader import ConfigFileError, FileConfigLoader
from .resolver import ConfigResolver
from .schema import PromptChainSettings
from .types import ConfigOrigin, FrozenConfig, ResolvedConfig, SourceMap

__all__ = [
    "ConfigFileError",
    "ConfigOrigin",
    "ConfigResolver",
    "FileConfigLoader",
    "FrozenConfig",
    "PromptChainSettings",
    "ResolvedConfig",
    "SourceMap",
    "SourceTracker",
    "check_environment",
    "get_effective_profile",
    "list_available_profiles",
    "resolve_config",
    "summarize_origins",
    "validate_profile",
]
