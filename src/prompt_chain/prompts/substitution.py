"""``$variable`` substitution in prompt templates.

Placeholders are ``$name`` where name is an identifier, optionally followed by
``.part`` segments so flattened keys such as ``$invoice.total`` can be
referenced. The longest dotted prefix naming a known variable is replaced and
any remaining suffix is kept as literal text.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
import re

log = logging.getLogger(__name__)

_VARIABLE_PATTERN = re.compile(
    r"\$([A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*)"
)


def _longest_known(name: str, variables: Mapping[str, str]) -> str | None:
    candidate = name
    while True:
        if candidate in variables:
            return candidate
        if "." not in candidate:
            return None
        candidate = candidate.rsplit(".", 1)[0]


def find_variables(prompt_text: str) -> list[str]:
    """Return the distinct placeholder names in order of first appearance."""
    seen: dict[str, None] = {}
    for match in _VARIABLE_PATTERN.finditer(prompt_text):
        seen.setdefault(match.group(1), None)
    return list(seen)


def substitute_variables(
    prompt_text: str, variables: Mapping[str, str] | None
) -> str:
    """Replace placeholders with values from `variables`.

    Unknown placeholders are left as-is and logged.
    """
    if not variables:
        return prompt_text

    missing: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        known = _longest_known(name, variables)
        if known is None:
            missing.append(name)
            return match.group(0)
        return str(variables[known]) + name[len(known) :]

    result = _VARIABLE_PATTERN.sub(_replace, prompt_text)

    for name in dict.fromkeys(missing):
        log.warning(
            "Variable not found in prompt variables: $%s (available: %s)",
            name,
            sorted(variables),
        )
    if result != prompt_text:
        log.debug("Variable substitution: %r -> %r", prompt_text, result)
    return result


def validate_variables(
    prompt_text: str, variables: Mapping[str, str] | None
) -> tuple[bool, list[str]]:
    """Check that every placeholder in `prompt_text` can be filled.

    Returns:
        ``(valid, missing_names)``.
    """
    available = variables or {}
    missing = [
        name
        for name in find_variables(prompt_text)
        if _longest_known(name, available) is None
    ]
    return not missing, missing


def parse_prompt_variables(raw: str | None) -> dict[str, str]:
    """Decode stored prompt variables.

    Accepts a JSON object or a list of objects (later objects win). Values
    are stringified. Malformed input yields an empty mapping.
    """
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        log.error("Failed to parse prompt variables JSON: %s", e)
        return {}

    objects = parsed if isinstance(parsed, list) else [parsed]
    variables: dict[str, str] = {}
    for obj in objects:
        if not isinstance(obj, dict):
            log.warning("Ignoring non-object prompt variables entry: %r", obj)
            continue
        variables.update({str(k): str(v) for k, v in obj.items()})
    return variables
