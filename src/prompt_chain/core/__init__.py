"""Resolution core: path extraction, condition evaluation, routing and merging."""

from .branching import (
    Branch,
    Condition,
    NextPromptConfig,
    evaluate_branch,
    find_matching_branch,
    parse_next_prompt_config,
    resolve_branch_targets,
    resolve_next_prompt,
    validate_next_prompt_config,
)
from .conditions import OPERATORS, compare_values, evaluate_condition
from .jsonpath import (
    MISSING,
    extract_jsonpath_raw,
    extract_jsonpath_value,
    is_valid_jsonpath,
    parse_jsonpath_segments,
)
from .merge import deep_merge, merge_chain_results

__all__ = [
    "MISSING",
    "OPERATORS",
    "Branch",
    "Condition",
    "NextPromptConfig",
    "compare_values",
    "deep_merge",
    "evaluate_branch",
    "evaluate_condition",
    "extract_jsonpath_raw",
    "extract_jsonpath_value",
    "find_matching_branch",
    "is_valid_jsonpath",
    "merge_chain_results",
    "parse_jsonpath_segments",
    "parse_next_prompt_config",
    "resolve_branch_targets",
    "resolve_next_prompt",
    "validate_next_prompt_config",
]
