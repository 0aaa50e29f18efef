"""Resolution of static chain inputs against earlier step results.

A ``call_chain`` reference has the form ``call[N].path``: `N` is the index of
an earlier step and `path` addresses its parsed JSON output with the same
syntax as a JSONPath minus the leading ``$.`` (``data.items[0].name``). The
single segments ``raw_text``, ``image_b64`` and ``image_mime_type`` read the
step's top-level fields instead.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging
import re
from typing import TYPE_CHECKING, Final

from prompt_chain.core.jsonpath import extract_jsonpath_value
from prompt_chain.core.types import ImagePart

if TYPE_CHECKING:
    from prompt_chain.chain.definitions import (
        ChainFieldDefinition,
        ChainImageDefinition,
        ChainVariableDefinition,
    )
    from prompt_chain.core.types import ChainCallResult

log = logging.getLogger(__name__)

_CALL_CHAIN_PATTERN: Final = re.compile(r"call\[([0-9]+)\]\.(.+)")
_TOP_LEVEL_FIELDS: Final = frozenset({"raw_text", "image_b64", "image_mime_type"})


@dataclass(frozen=True, slots=True)
class CallChainPath:
    call_index: int
    property_path: str


def parse_call_chain_path(reference: str) -> CallChainPath | None:
    """Parse ``call[N].path``; returns None for anything else.

    Example:
        >>> parse_call_chain_path("call[2].data.total")
        CallChainPath(call_index=2, property_path='data.total')
    """
    match = _CALL_CHAIN_PATTERN.fullmatch(reference)
    if match is None:
        log.error(
            "Invalid call_chain reference %r (expected call[N].property.path)",
            reference,
        )
        return None
    return CallChainPath(call_index=int(match.group(1)), property_path=match.group(2))


def extract_value_from_result(result: ChainCallResult, property_path: str) -> str | None:
    """Read `property_path` from a step result in its string form."""
    if property_path in _TOP_LEVEL_FIELDS:
        value = getattr(result, property_path)
        if not value:
            log.warning(
                "Field %s is empty on call %d", property_path, result.call_index
            )
            return None
        return value

    if not isinstance(result.parsed_result, dict | list):
        log.warning(
            "Call %d has no parsed JSON to read %r from",
            result.call_index,
            property_path,
        )
        return None
    return extract_jsonpath_value(result.parsed_result, f"$.{property_path}")


def resolve_chain_field(
    field: ChainFieldDefinition, previous_results: Sequence[ChainCallResult]
) -> str | None:
    """Resolve a field definition to its value.

    Returns:
        The literal for ``direct`` fields; for ``call_chain`` fields the
        referenced value, or None when the reference is malformed, points at
        a step that has not run or failed, or the path is not found.
    """
    if field.match_type == "direct":
        return field.value

    parsed = parse_call_chain_path(field.value)
    if parsed is None:
        return None

    if parsed.call_index >= len(previous_results):
        log.error(
            "call_chain %r references call %d but only %d call(s) have run",
            field.value,
            parsed.call_index,
            len(previous_results),
        )
        return None

    referenced = previous_results[parsed.call_index]
    if not referenced.success:
        log.warning(
            "call_chain %r references failed call %d", field.value, parsed.call_index
        )
        return None

    value = extract_value_from_result(referenced, parsed.property_path)
    if value is None:
        log.warning("Could not extract a value for call_chain %r", field.value)
    return value


def build_prompt_variables(
    variables: Sequence[ChainVariableDefinition] | None,
    previous_results: Sequence[ChainCallResult],
) -> dict[str, str]:
    """Resolve variable definitions into a substitution mapping.

    Definitions without a `variable_name` and values that cannot be resolved
    are skipped with a warning.
    """
    resolved: dict[str, str] = {}
    for index, variable in enumerate(variables or ()):
        if not variable.variable_name:
            log.warning("Variable definition %d is missing variable_name", index)
            continue

        value = resolve_chain_field(variable, previous_results)
        if value is None:
            log.warning(
                "Could not resolve variable %r (%s %r)",
                variable.variable_name,
                variable.match_type,
                variable.value,
            )
            continue

        resolved[variable.variable_name] = value
        log.debug("Resolved variable %r = %.50r", variable.variable_name, value)
    return resolved


def resolve_chain_image_definition(
    image_def: ChainImageDefinition, previous_results: Sequence[ChainCallResult]
) -> ImagePart | None:
    """Resolve both halves of an image definition; None if either fails."""
    data = resolve_chain_field(image_def.image_b64, previous_results)
    mime_type = resolve_chain_field(image_def.image_mime_type, previous_results)

    if not data:
        log.error("Could not resolve image_b64 from %r", image_def.image_b64.value)
        return None
    if not mime_type:
        log.error(
            "Could not resolve image_mime_type from %r", image_def.image_mime_type.value
        )
        return None
    return ImagePart(data=data, mime_type=mime_type)
