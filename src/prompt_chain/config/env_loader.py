"""Environment variable configuration loading.

Reads ``PROMPT_CHAIN_*`` variables, optionally after loading a ``.env`` file
into the process environment.
"""

import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from prompt_chain.exceptions import ConfigurationError

from .schema import PromptChainSettings
from .types import ENV_PREFIX, SENSITIVE_FIELDS


def env_var_name(field: str) -> str:
    return f"{ENV_PREFIX}{field.upper()}"


class EnvironmentConfigLoader:
    """Loads configuration fields that are set in the environment."""

    def load_env_config(self, env_file: str | Path | None = None) -> dict[str, Any]:
        """Return validated values for the fields set in the environment.

        Args:
            env_file: Optional ``.env`` file loaded first. Variables already
                present in the environment are not overridden.

        Raises:
            ConfigurationError: If a variable holds an invalid value or the
                env file is missing or malformed.
        """
        if env_file:
            self._load_env_file(env_file)

        env_values = {
            field: os.environ[env_var_name(field)]
            for field in PromptChainSettings.field_names()
            if env_var_name(field) in os.environ
        }
        if not env_values:
            return {}

        try:
            settings = PromptChainSettings(**env_values)
        except ValidationError as e:
            names = ", ".join(env_var_name(field) for field in env_values)
            raise ConfigurationError(
                f"Invalid environment variable values ({names}): {e}"
            ) from e
        return {field: getattr(settings, field) for field in env_values}

    def _load_env_file(self, env_file: str | Path) -> None:
        env_path = Path(env_file)
        if not env_path.exists():
            raise ConfigurationError(f"Environment file not found: {env_path}")

        try:
            lines = env_path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read environment file {env_path}: {e}"
            ) from e

        for line_num, raw_line in enumerate(lines, 1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                raise ConfigurationError(
                    f"Invalid format at {env_path}:{line_num}: {line!r}. "
                    "Expected KEY=VALUE."
                )
            key, value = (part.strip() for part in line.split("=", 1))
            if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                value = value[1:-1]
            os.environ.setdefault(key, value)

    def get_env_summary(self) -> dict[str, str]:
        """Currently set ``PROMPT_CHAIN_*`` variables, secrets redacted."""
        summary = {}
        for field in PromptChainSettings.field_names():
            name = env_var_name(field)
            if name in os.environ:
                summary[name] = (
                    "<redacted>" if field in SENSITIVE_FIELDS else os.environ[name]
                )
        return summary
