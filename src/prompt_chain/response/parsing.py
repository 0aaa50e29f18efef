"""
Text parsing strategies for extracting JSON from model responses
"""

import json
import logging
import re

from prompt_chain.core.types import JsonValue

log = logging.getLogger(__name__)

_CODE_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def _loads_container(candidate: str) -> dict[str, JsonValue] | list[JsonValue] | None:
    """Parse `candidate`, accepting only objects and arrays"""  # noqa: D415
    try:
        parsed = json.loads(candidate)
    except (json.JSONDecodeError, TypeError):
        return None
    if isinstance(parsed, dict | list):
        return parsed
    return None


def parse_llm_json_response(
    text: str | None,
) -> dict[str, JsonValue] | list[JsonValue] | None:
    """Extract a JSON object or array from raw model text.

    Strategies, in order:
        1. The whole text as JSON
        2. The first fenced code block (```json or bare ```)
        3. The span from the first ``{`` to the last ``}``

    Returns:
        The parsed container, or None when no strategy yields one. Bare
        scalars (``"42"``, ``"true"``) are not accepted.
    """
    if not text:
        return None

    # Strategy 1: direct parse
    parsed = _loads_container(text)
    if parsed is not None:
        return parsed

    # Strategy 2: fenced code block
    match = _CODE_BLOCK_PATTERN.search(text)
    if match:
        parsed = _loads_container(match.group(1).strip())
        if parsed is not None:
            log.debug("Extracted JSON from code block")
            return parsed

    # Strategy 3: brace matching
    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        parsed = _loads_container(text[first_brace : last_brace + 1])
        if parsed is not None:
            log.debug("Extracted JSON by brace matching")
            return parsed

    log.warning("Could not parse model response as JSON: %.100r", text)
    return None
