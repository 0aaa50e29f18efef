"""Module-level functions over a shared `ConfigResolver`."""

from itertools import chain
from pathlib import Path
from typing import Any

from prompt_chain.exceptions import ConfigurationError

from .resolver import ConfigResolver
from .types import ResolvedConfig

_resolver = ConfigResolver()


def resolve_config(
    programmatic: dict[str, Any] | None = None,
    *,
    profile: str | None = None,
    use_env_file: str | Path | None = None,
    project_root: Path | None = None,
) -> ResolvedConfig:
    """Merge every configuration source into a `ResolvedConfig`.

    Highest precedence first: ``programmatic``, ``PROMPT_CHAIN_*`` variables,
    ``[tool.prompt_chain]`` in pyproject.toml, the home file, then defaults.
    Fields in ``programmatic`` that the schema does not know are dropped.

    ``profile`` falls back to ``PROMPT_CHAIN_PROFILE``. ``use_env_file``
    names a ``.env`` file read before the environment, and ``project_root``
    is where the upward pyproject.toml search starts.

    Raises ConfigurationError when a value fails validation or a project
    file cannot be parsed::

        frozen = resolve_config({"max_depth": 5}, profile="ci").to_frozen()
    """
    return _resolver.resolve(
        programmatic=programmatic,
        profile=profile,
        use_env_file=use_env_file,
        project_root=project_root,
    )


def list_available_profiles(project_root: Path | None = None) -> dict[str, list[str]]:
    return _resolver.list_available_profiles(project_root)


def get_effective_profile() -> str | None:
    return _resolver.get_effective_profile()


def validate_profile(profile: str, project_root: Path | None = None) -> dict[str, bool]:
    """Map each file kind to whether it declares `profile`.

    A profile declared nowhere is a ConfigurationError.
    """
    declared = list_available_profiles(project_root)
    presence = {kind: profile in names for kind, names in declared.items()}
    if any(presence.values()):
        return presence
    known = list(chain.from_iterable(declared.values()))
    raise ConfigurationError(f"Profile '{profile}' not found. Available profiles: {known}")


def check_environment() -> dict[str, str]:
    """``PROMPT_CHAIN_*`` variables currently set, with the API key masked."""
    return _resolver.env_loader.get_env_summary()
