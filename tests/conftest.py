"""Shared pytest setup: environment isolation, log levels and markers."""

import logging
import os

import pytest


@pytest.fixture(autouse=True)
def isolate_prompt_chain_env(request, monkeypatch, tmp_path):
    """Run every test against an empty PROMPT_CHAIN_* environment.

    The home directory and pyproject lookups are redirected into tmp_path,
    so a developer's own ``prompt_chain.toml`` never leaks into results.
    Mark a test ``allow_env_pollution`` to opt out.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return

    for key in [k for k in os.environ if k.startswith("PROMPT_CHAIN_")]:
        monkeypatch.delenv(key, raising=False)

    config_home = tmp_path / "config_home"
    config_home.mkdir()
    monkeypatch.setenv("PROMPT_CHAIN_CONFIG_HOME", str(config_home))
    monkeypatch.setenv(
        "PROMPT_CHAIN_PYPROJECT_PATH", str(tmp_path / "no_project" / "pyproject.toml")
    )


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    for name in ("httpx", "google_genai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def pytest_configure(config):
    for marker in (
        "unit: fast tests with scripted adapters and no network",
        "integration: tests that exercise several components together",
        "allow_env_pollution: keep PROMPT_CHAIN_* variables from the outer env",
    ):
        config.addinivalue_line("markers", marker)
