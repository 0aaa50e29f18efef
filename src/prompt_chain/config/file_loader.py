"""TOML configuration files with profile support.

Two files are consulted: the ``[tool.prompt_chain]`` table of the nearest
``pyproject.toml`` and the home file ``~/.config/prompt_chain.toml``. Either
may declare named profiles under ``profiles.<name>``.
"""

import os
from pathlib import Path
import tomllib
from typing import Any

from prompt_chain.exceptions import ConfigurationError

PYPROJECT_PATH_ENV = "PROMPT_CHAIN_PYPROJECT_PATH"
CONFIG_HOME_ENV = "PROMPT_CHAIN_CONFIG_HOME"
HOME_CONFIG_NAME = "prompt_chain.toml"
TOOL_TABLE = "prompt_chain"


class ConfigFileError(ConfigurationError):
    """Raised when a configuration file cannot be read or parsed."""

    def __init__(
        self, file_path: Path, message: str, cause: Exception | None = None
    ) -> None:
        self.file_path = file_path
        self.message = message
        self.cause = cause
        super().__init__(f"Config file error in {file_path}: {message}")


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open(mode="rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigFileError(path, f"Failed to parse TOML: {e}", cause=e) from e


def _select_profile(
    path: Path, table: dict[str, Any], profile: str | None
) -> dict[str, Any]:
    if profile:
        profiles = table.get("profiles", {})
        if profile not in profiles:
            raise ConfigFileError(
                path,
                f"Profile '{profile}' not found. "
                f"Available profiles: {list(profiles)}",
            )
        return dict(profiles[profile])
    config = dict(table)
    config.pop("profiles", None)
    return config


class FileConfigLoader:
    """Loads the project and home configuration files."""

    def load_project_config(
        self, project_root: Path | None = None, profile: str | None = None
    ) -> dict[str, Any]:
        """Return ``[tool.prompt_chain]`` (or one of its profiles).

        Returns an empty dict when there is no pyproject.toml or it has no
        ``prompt_chain`` table.

        Raises:
            ConfigFileError: If the file cannot be parsed or the profile is
                not declared.
        """
        pyproject_path = self.find_pyproject_toml(project_root)
        if pyproject_path is None:
            return {}

        table = _read_toml(pyproject_path).get("tool", {}).get(TOOL_TABLE, {})
        if not table:
            return {}
        return _select_profile(pyproject_path, table, profile)

    def load_home_config(self, profile: str | None = None) -> dict[str, Any]:
        """Return the home file's root table (or one of its profiles)."""
        home_path = self.home_config_path()
        if not home_path.exists():
            return {}
        return _select_profile(home_path, _read_toml(home_path), profile)

    def list_available_profiles(
        self, project_root: Path | None = None
    ) -> dict[str, list[str]]:
        profiles: dict[str, list[str]] = {"project": [], "home": []}

        pyproject_path = self.find_pyproject_toml(project_root)
        if pyproject_path is not None:
            table = _read_toml(pyproject_path).get("tool", {}).get(TOOL_TABLE, {})
            profiles["project"] = list(table.get("profiles", {}))

        home_path = self.home_config_path()
        if home_path.exists():
            profiles["home"] = list(_read_toml(home_path).get("profiles", {}))

        return profiles

    def find_pyproject_toml(self, start_dir: Path | None = None) -> Path | None:
        """Locate pyproject.toml, honouring ``PROMPT_CHAIN_PYPROJECT_PATH``.

        Without an override, searches `start_dir` (default: cwd) and its
        parents.
        """
        override = os.getenv(PYPROJECT_PATH_ENV)
        if override:
            path = Path(override)
            return path if path.exists() else None

        current = Path(start_dir or Path.cwd()).resolve()
        while True:
            candidate = current / "pyproject.toml"
            if candidate.exists():
                return candidate
            if current == current.parent:
                return None
            current = current.parent

    def home_config_path(self) -> Path:
        config_home = os.getenv(CONFIG_HOME_ENV)
        base = Path(config_home) if config_home else Path.home() / ".config"
        return base / HOME_CONFIG_NAME
