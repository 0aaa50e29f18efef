"""Restricted JSONPath extraction.

Supports only the forms routing rules and chain references need:
``$.field``, ``$.nested.field``, ``$.items[0]`` and ``$.items[0].name``.
There are no wildcards, filters, slices or recursive descent. Traversal never
raises: anything that cannot be followed is reported as "not found".
"""

from __future__ import annotations

import enum
import json
import logging
import math
import re
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from prompt_chain.core.types import JsonValue

log = logging.getLogger(__name__)

_JSONPATH_PATTERN: Final = re.compile(
    r"\$\.[A-Za-z_][A-Za-z0-9_]*(?:\[[0-9]+\])?(?:\.[A-Za-z_][A-Za-z0-9_]*(?:\[[0-9]+\])?)*"
)


class _Missing(enum.Enum):
    MISSING = "MISSING"

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing.MISSING
"""Marker for "no value at this path" (distinct from a JSON ``null``)."""


def is_valid_jsonpath(path: object) -> bool:
    """Return True if `path` is a supported JSONPath expression.

    Examples:
        >>> is_valid_jsonpath("$.items[0].name")
        True
        >>> is_valid_jsonpath("$document_type")
        False
    """
    if not isinstance(path, str) or not path:
        return False
    return _JSONPATH_PATTERN.fullmatch(path) is not None


def parse_jsonpath_segments(path: str) -> list[str | int]:
    """Split a JSONPath into object keys (str) and array indices (int).

    ``$.data.items[0].name`` becomes ``["data", "items", 0, "name"]``.

    The expression is not validated here. An unclosed ``[`` makes the rest of
    the text a final literal key; a bracket body that is not an integer is
    dropped.
    """
    rest = path[2:] if path.startswith("$.") else path
    segments: list[str | int] = []
    current = ""
    i = 0
    while i < len(rest):
        char = rest[i]
        if char == ".":
            if current:
                segments.append(current)
                current = ""
        elif char == "[":
            if current:
                segments.append(current)
                current = ""
            end = rest.find("]", i)
            if end == -1:
                current = rest[i:]
                break
            body = rest[i + 1 : end]
            if body.isascii() and body.isdigit():
                segments.append(int(body))
            i = end
        else:
            current += char
        i += 1

    if current:
        segments.append(current)
    return segments


def extract_jsonpath_raw(root: JsonValue, path: str) -> JsonValue | _Missing:
    """Read the value at `path` without converting it.

    Returns:
        The value found (which may be ``None`` for a JSON null), or `MISSING`
        when the path is invalid or cannot be followed.
    """
    if not is_valid_jsonpath(path):
        log.warning("Invalid JSONPath expression: %r", path)
        return MISSING

    segments = parse_jsonpath_segments(path)
    if not segments:
        log.warning("Empty JSONPath segments: %r", path)
        return MISSING

    current: JsonValue = root
    for segment in segments:
        if current is None:
            log.debug("JSONPath %s hit null at %r", path, segment)
            return MISSING

        if isinstance(segment, int):
            if not isinstance(current, list):
                log.debug(
                    "JSONPath %s indexed non-array (%s) at %r",
                    path,
                    type(current).__name__,
                    segment,
                )
                return MISSING
            if segment >= len(current):
                log.debug(
                    "JSONPath %s index %d out of bounds (length %d)",
                    path,
                    segment,
                    len(current),
                )
                return MISSING
            current = current[segment]
        else:
            if not isinstance(current, dict):
                log.debug(
                    "JSONPath %s read key from non-object (%s) at %r",
                    path,
                    type(current).__name__,
                    segment,
                )
                return MISSING
            if segment not in current:
                log.debug("JSONPath %s missing key %r", path, segment)
                return MISSING
            current = current[segment]

    return current


def extract_jsonpath_value(root: JsonValue, path: str) -> str | None:
    """Read the value at `path` in its string form.

    Strings come back verbatim, numbers and booleans are stringified, and
    objects and arrays are serialized as compact JSON.

    Returns:
        The string form, or None when nothing (or a JSON null) is found.

    Example:
        >>> extract_jsonpath_value({"data": {"total": 100}}, "$.data.total")
        '100'
    """
    value = extract_jsonpath_raw(root, path)
    if value is MISSING or value is None:
        return None
    try:
        return stringify_json_value(value)
    except (TypeError, ValueError) as e:
        log.warning("Failed to stringify JSONPath result for %s: %s", path, e)
        return None


def stringify_json_value(value: JsonValue | _Missing) -> str:
    """Convert a JSON value to the string form used for comparisons.

    Booleans render as ``true``/``false``, integral floats drop their
    fractional part, ``None`` renders as ``null`` and containers are compact
    JSON.

    Raises:
        TypeError, ValueError: If a container holds values JSON cannot encode.
    """
    if value is None or value is MISSING:
        return "null"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
