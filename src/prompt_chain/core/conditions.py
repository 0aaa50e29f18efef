"""Condition evaluation for routing rules.

A condition compares one value read from a model's JSON output against a
literal. Comparison is deliberately forgiving: mixed types compare by their
string forms and ordering operators fall back to lexicographic order when
either side is not numeric. An unknown operator never matches.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, Final

from prompt_chain.core.jsonpath import (
    MISSING,
    extract_jsonpath_raw,
    is_valid_jsonpath,
    stringify_json_value,
)

if TYPE_CHECKING:
    from prompt_chain.core.branching import Condition
    from prompt_chain.core.types import JsonValue

log = logging.getLogger(__name__)

OPERATORS: Final = frozenset(
    {"==", "!=", ">", "<", ">=", "<=", "contains", "startsWith", "endsWith"}
)
_ORDERING: Final = frozenset({">", "<", ">=", "<="})


def _kind(value: Any) -> str:
    """Classify a value the way JSON does (int and float are both numbers)."""
    if value is None or value is MISSING:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _as_string(value: Any) -> str:
    try:
        return stringify_json_value(value)
    except (TypeError, ValueError):
        return str(value)


def _as_number(value: Any) -> float | None:
    """Strictly parse a finite number; booleans are never numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _order(left: Any, operator: str, right: Any) -> bool:
    match operator:
        case ">":
            return left > right
        case "<":
            return left < right
        case ">=":
            return left >= right
        case "<=":
            return left <= right
    return False


def compare_values(left: Any, operator: str, right: Any) -> bool:
    """Compare `left` (from model output) with `right` (from the rule).

    Args:
        left: Value extracted from the output, or `MISSING`.
        operator: One of `OPERATORS`.
        right: The literal from the condition.

    Returns:
        Whether the comparison holds. Unknown operators return False.

    Examples:
        >>> compare_values(1500, ">", 1000)
        True
        >>> compare_values("abc", ">", "abd")
        False
    """
    if left is None or left is MISSING:
        if operator == "==":
            return right is None
        if operator == "!=":
            return right is not None
        return False

    if operator in ("==", "!="):
        if _kind(left) == _kind(right):
            equal = left == right
        else:
            equal = _as_string(left) == _as_string(right)
        return equal if operator == "==" else not equal

    if operator in _ORDERING:
        left_num = _as_number(left)
        right_num = _as_number(right)
        if left_num is None or right_num is None:
            return _order(_as_string(left), operator, _as_string(right))
        return _order(left_num, operator, right_num)

    if operator == "contains":
        return _as_string(right) in _as_string(left)
    if operator == "startsWith":
        return _as_string(left).startswith(_as_string(right))
    if operator == "endsWith":
        return _as_string(left).endswith(_as_string(right))

    log.warning("Unknown condition operator %r; treating as no match", operator)
    return False


def evaluate_condition(condition: Condition, output: JsonValue) -> bool:
    """Evaluate one condition against a model's parsed output."""
    if not is_valid_jsonpath(condition.field):
        log.warning("Invalid condition field JSONPath: %r", condition.field)
        return False

    actual = extract_jsonpath_raw(output, condition.field)
    result = compare_values(actual, condition.operator, condition.value)

    log.debug(
        "Evaluated condition %s %s %r (actual=%r) -> %s",
        condition.field,
        condition.operator,
        condition.value,
        actual,
        result,
    )
    return result
