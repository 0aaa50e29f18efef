"""Layered configuration merge.

Sources are applied lowest first (defaults, home file, project file,
environment, programmatic) so each later layer overwrites the one below.
"""

from collections.abc import Callable
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from prompt_chain.exceptions import ConfigurationError

from .audit import SourceTracker
from .env_loader import EnvironmentConfigLoader
from .file_loader import ConfigFileError, FileConfigLoader
from .schema import PromptChainSettings
from .types import ConfigOrigin, ResolvedConfig

log = logging.getLogger(__name__)

PROFILE_ENV = "PROMPT_CHAIN_PROFILE"


class ConfigResolver:
    """Owns the file and environment loaders used for every resolution."""

    def __init__(self) -> None:
        self.file_loader = FileConfigLoader()
        self.env_loader = EnvironmentConfigLoader()

    def resolve(
        self,
        programmatic: dict[str, Any] | None = None,
        *,
        profile: str | None = None,
        use_env_file: str | Path | None = None,
        project_root: Path | None = None,
    ) -> ResolvedConfig:
        """Merge, validate and return the configuration with its source map.

        A malformed project file raises ConfigFileError, as does a profile
        that neither file declares. Invalid values raise ConfigurationError.
        """
        tracker = SourceTracker()
        merged: dict[str, Any] = {}

        if profile is None:
            profile = os.getenv(PROFILE_ENV)

        def apply(values: dict[str, Any], origin: ConfigOrigin) -> None:
            for field, value in values.items():
                if field in merged:
                    merged[field] = value
                    tracker.set_origin(field, origin)
                else:
                    log.debug("Ignoring unknown config field %r from %s", field, origin)

        merged.update(PromptChainSettings.defaults())
        tracker.set_multiple(merged, "default")

        home_config, home_error = self._load_optional(
            lambda: self.file_loader.load_home_config(profile=profile)
        )
        apply(home_config, "file")

        project_config, project_error = self._load_optional(
            lambda: self.file_loader.load_project_config(
                project_root=project_root, profile=profile
            )
        )
        if project_error is not None:
            found_in_home = (
                home_error is None and self.file_loader.home_config_path().exists()
            )
            if profile is None or not found_in_home:
                raise project_error
        apply(project_config, "file")

        apply(self.env_loader.load_env_config(env_file=use_env_file), "env")

        if programmatic:
            apply(programmatic, "programmatic")

        try:
            settings = PromptChainSettings(**merged)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        return ResolvedConfig(**settings.to_dict(), origin=tracker.get_source_map())

    def _load_optional(
        self, loader: Callable[[], dict[str, Any]]
    ) -> tuple[dict[str, Any], ConfigFileError | None]:
        try:
            return loader(), None
        except ConfigFileError as e:
            if e.cause is not None:
                log.warning("%s", e)
            else:
                log.debug("%s", e)
            return {}, e

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        return self.file_loader.list_available_profiles(project_root)

    def get_effective_profile(self) -> str | None:
        return os.getenv(PROFILE_ENV)
