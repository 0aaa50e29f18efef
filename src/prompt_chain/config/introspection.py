"""Inspect the effective configuration and where each value came from.

Usage:
    python -m prompt_chain.config
    python -m prompt_chain.config --json
    python -m prompt_chain.config --profile ci --check
"""

import argparse
import json
import sys
from typing import Any

from prompt_chain.exceptions import ConfigurationError

from .api import resolve_config
from .audit import summarize_origins
from .types import ResolvedConfig

# ruff: noqa: T201


def get_config_info(
    *,
    profile: str | None = None,
    programmatic_overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Structured, redacted view of the effective configuration."""
    try:
        resolved = resolve_config(programmatic=programmatic_overrides, profile=profile)
    except ConfigurationError as e:
        return {
            "status": "invalid",
            "error": str(e),
            "config": None,
            "sources": {},
            "warnings": [],
        }

    config = resolved.values()
    config["api_key"] = "[SET]" if resolved.api_key else None
    return {
        "status": "valid",
        "config": config,
        "sources": dict(resolved.origin),
        "source_counts": summarize_origins(resolved.origin),
        "warnings": get_config_warnings(resolved),
    }


def get_config_warnings(resolved: ResolvedConfig) -> list[str]:
    """Non-fatal issues worth surfacing."""
    warnings = []
    if not resolved.api_key:
        warnings.append("No API key configured - the Gemini adapter cannot be built")
    if resolved.max_depth > 50:
        warnings.append("max_depth is very high - runaway dynamic chains stay costly")
    if resolved.extract_continue_on_error:
        warnings.append(
            "extract_continue_on_error retries a missing prompt until max_depth"
        )
    return warnings


def print_config_debug(*, profile: str | None = None) -> int:
    """Print the effective configuration with sources; return an exit code."""
    try:
        resolved = resolve_config(profile=profile)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    print("=== Effective Configuration ===")
    print(resolved.audit())
    warnings = get_config_warnings(resolved)
    if warnings:
        print("\n=== Warnings ===")
        for warning in warnings:
            print(f"  - {warning}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m prompt_chain.config",
        description="Show where each prompt-chain setting comes from.",
    )
    parser.add_argument("--profile", help="resolve with this named profile")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--json", action="store_true", help="emit the redacted report as JSON")
    mode.add_argument(
        "--check",
        action="store_true",
        help="print nothing; exit 0 when the configuration validates, 1 otherwise",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if not (args.check or args.json):
        return print_config_debug(profile=args.profile)

    info = get_config_info(profile=args.profile)
    if args.json:
        print(json.dumps(info, indent=2))
    return 0 if info["status"] == "valid" else 1
