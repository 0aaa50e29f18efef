"""Routing rules for dynamic chains.

A prompt template may carry a ``next_prompt`` rule telling the dynamic runner
which template to run next. Two shapes exist:

* simple: the four ``static_/dynamic_prompt_area/key`` fields at the top level;
* branching: an ordered ``branches`` list (each a conjunction of conditions
  plus targets) and an optional ``default_branch``.

Static values always win over their dynamic (JSONPath) counterparts. A rule
that cannot be resolved means "stop the chain"; it is never an error.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from prompt_chain.core.conditions import evaluate_condition
from prompt_chain.core.jsonpath import extract_jsonpath_value
from prompt_chain.core.types import JsonValue, ResolvedNextPrompt

log = logging.getLogger(__name__)


class Condition(BaseModel):
    """A single comparison against a field of the model output."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    # Missing parts make the condition evaluate to False rather than reject the rule
    field: str | None = None
    operator: str | None = None
    value: bool | int | float | str | None = None


class _Targets(BaseModel):
    """Area/key targets shared by branches and the simple rule shape."""

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    static_prompt_area: str | None = None
    dynamic_prompt_area: str | None = None
    static_prompt_key: str | None = None
    dynamic_prompt_key: str | None = None

    def is_fully_specified(self) -> bool:
        has_area = bool(self.static_prompt_area or self.dynamic_prompt_area)
        has_key = bool(self.static_prompt_key or self.dynamic_prompt_key)
        return has_area and has_key


class Branch(_Targets):
    """Conditions (AND-ed) plus the targets to use when they all hold."""

    conditions: list[Condition] | None = None


class NextPromptConfig(_Targets):
    """The ``next_prompt`` routing rule attached to a prompt template."""

    branches: list[Branch] | None = None
    default_branch: Branch | None = None

    @property
    def is_branching(self) -> bool:
        return bool(self.branches) or self.default_branch is not None


# --- Parsing ---


def parse_next_prompt_config(
    raw: str | Mapping[str, Any] | NextPromptConfig | None,
) -> NextPromptConfig | None:
    """Decode a stored routing rule.

    Accepts the persisted JSON text, an already-decoded mapping, or a config
    instance. Empty input, invalid JSON, a non-object or a non-list
    ``branches`` yields None. Below that, validation is per part: a malformed
    branch or default branch is ignored, as are invalid top-level targets,
    and numeric targets are read as strings.
    """
    if raw is None:
        return None
    if isinstance(raw, NextPromptConfig):
        return raw

    data: Any = raw
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning(
                "Failed to parse next_prompt JSON (%s): %.100s", e.msg, raw
            )
            return None

    if not isinstance(data, Mapping):
        log.warning(
            "next_prompt must be a JSON object, got %s", type(data).__name__
        )
        return None

    raw_branches = data.get("branches")
    if raw_branches is not None and not isinstance(raw_branches, list):
        log.warning(
            "next_prompt branches must be a list, got %s", type(raw_branches).__name__
        )
        return None

    # A malformed branch becomes an empty one, which never resolves, so the
    # reported branch_index of later branches is unchanged
    branches = [
        _validate_branch(item, f"branch {index}") or Branch()
        for index, item in enumerate(raw_branches or ())
    ]
    default_branch = (
        _validate_branch(data["default_branch"], "default_branch")
        if data.get("default_branch") is not None
        else None
    )
    targets = _validate_targets(
        {k: v for k, v in data.items() if k not in ("branches", "default_branch")}
    )
    return NextPromptConfig(
        **targets.model_dump(),
        branches=branches if raw_branches is not None else None,
        default_branch=default_branch,
    )


def _validate_branch(raw: Any, label: str) -> Branch | None:
    """Validate one branch, or return None with a warning."""
    try:
        return Branch.model_validate(raw)
    except ValidationError as e:
        log.warning("Ignoring malformed next_prompt %s: %s", label, e)
        return None


def _validate_targets(raw: dict[str, Any]) -> _Targets:
    try:
        return _Targets.model_validate(raw)
    except ValidationError as e:
        invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
        log.warning(
            "Ignoring invalid next_prompt fields %s: %s", sorted(map(str, invalid)), e
        )
        return _Targets.model_validate(
            {k: v for k, v in raw.items() if k not in invalid}
        )


# --- Evaluation ---


def evaluate_branch(branch: Branch, output: JsonValue) -> bool:
    """True when every condition holds; a branch without conditions matches."""
    if not branch.conditions:
        return True
    return all(evaluate_condition(c, output) for c in branch.conditions)


def resolve_branch_targets(
    targets: _Targets, output: JsonValue
) -> tuple[str, str] | None:
    """Resolve ``(prompt_area, prompt_key)``, static before dynamic.

    Returns:
        The pair, or None if either side is missing or resolves to an empty
        value.
    """
    prompt_area: str | None = None
    if targets.static_prompt_area:
        prompt_area = targets.static_prompt_area
    elif targets.dynamic_prompt_area:
        prompt_area = extract_jsonpath_value(output, targets.dynamic_prompt_area)

    prompt_key: str | None = None
    if targets.static_prompt_key:
        prompt_key = targets.static_prompt_key
    elif targets.dynamic_prompt_key:
        prompt_key = extract_jsonpath_value(output, targets.dynamic_prompt_key)

    if not prompt_area or not prompt_key:
        log.debug(
            "Branch resolution incomplete (area=%r, key=%r, targets=%s)",
            prompt_area,
            prompt_key,
            targets.model_dump(exclude_none=True, exclude={"conditions"}),
        )
        return None
    return prompt_area, prompt_key


def find_matching_branch(
    config: NextPromptConfig, output: JsonValue
) -> ResolvedNextPrompt | None:
    """Return the first branch that both matches and resolves.

    A branch whose conditions hold but whose targets cannot be resolved is
    skipped. When no branch wins, the default branch is tried.
    """
    for index, branch in enumerate(config.branches or ()):
        if not evaluate_branch(branch, output):
            continue
        resolved = resolve_branch_targets(branch, output)
        if resolved is None:
            continue
        prompt_area, prompt_key = resolved
        log.debug("Matched branch %d -> %s/%s", index, prompt_area, prompt_key)
        return ResolvedNextPrompt(
            prompt_area=prompt_area,
            prompt_key=prompt_key,
            resolution_type="branch",
            branch_index=index,
        )

    if config.default_branch is not None:
        resolved = resolve_branch_targets(config.default_branch, output)
        if resolved is not None:
            prompt_area, prompt_key = resolved
            log.debug("Using default branch -> %s/%s", prompt_area, prompt_key)
            return ResolvedNextPrompt(
                prompt_area=prompt_area,
                prompt_key=prompt_key,
                resolution_type="default",
            )

    return None


def resolve_next_prompt(
    config: NextPromptConfig, output: JsonValue
) -> ResolvedNextPrompt | None:
    """Resolve a routing rule against a model output.

    Branching rules go through `find_matching_branch`; otherwise the simple
    top-level fields are used.

    Returns:
        The next cursor, or None meaning the chain should stop.

    Example:
        >>> config = NextPromptConfig(
        ...     static_prompt_area="doc", dynamic_prompt_key="$.document_type"
        ... )
        >>> resolve_next_prompt(config, {"document_type": "invoice"}).prompt_key
        'invoice'
    """
    if config.is_branching:
        return find_matching_branch(config, output)

    resolved = resolve_branch_targets(config, output)
    if resolved is None:
        return None
    prompt_area, prompt_key = resolved
    log.debug("Resolved simple next_prompt -> %s/%s", prompt_area, prompt_key)
    return ResolvedNextPrompt(
        prompt_area=prompt_area, prompt_key=prompt_key, resolution_type="simple"
    )


def validate_next_prompt_config(config: NextPromptConfig) -> bool:
    """Authoring-time check that some area+key pair is configured.

    True when the simple fields, any branch, or the default branch specify
    both an area and a key. This is not consulted during resolution.
    """
    if config.is_fully_specified():
        return True
    if any(branch.is_fully_specified() for branch in config.branches or ()):
        return True
    return config.default_branch is not None and config.default_branch.is_fully_specified()
