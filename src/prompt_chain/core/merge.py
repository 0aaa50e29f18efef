"""Deep merging of JSON objects produced by successive chain steps."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import copy
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prompt_chain.core.types import ChainCallResult, JsonObject, JsonValue

log = logging.getLogger(__name__)


def deep_merge(
    target: Mapping[str, JsonValue], source: Mapping[str, JsonValue]
) -> JsonObject:
    """Recursively merge `source` into a copy of `target`.

    Nested objects are merged key by key; any other value in `source`
    (including arrays) replaces the value in `target`. The result shares no
    nested objects or arrays with either input.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 1}}, {"b": {"y": 2}, "c": 3})
        {'a': 1, 'b': {'x': 1, 'y': 2}, 'c': 3}
    """
    result: JsonObject = copy.deepcopy(dict(target))
    for key, source_value in source.items():
        target_value = result.get(key)
        if isinstance(source_value, Mapping) and isinstance(target_value, Mapping):
            result[key] = deep_merge(target_value, source_value)
        else:
            result[key] = copy.deepcopy(source_value)
    return result


def merge_chain_results(results: Iterable[ChainCallResult]) -> JsonObject:
    """Fold every successful step's JSON object into one result, in order."""
    merged: JsonObject = {}
    for result in results:
        if not result.success or not isinstance(result.parsed_result, dict):
            continue
        merged = deep_merge(merged, result.parsed_result)
        log.debug("Merged result from call %d", result.call_index)
    return merged
