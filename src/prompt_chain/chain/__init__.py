"""Static and dynamic chain runners."""

from .context import ChainContext
from .definitions import (
    ChainCallDefinition,
    ChainFieldDefinition,
    ChainImageDefinition,
    ChainVariableDefinition,
)
from .dynamic import build_step_variables, flatten_json_object, run_dynamic_extract
from .fields import (
    build_prompt_variables,
    extract_value_from_result,
    parse_call_chain_path,
    resolve_chain_field,
    resolve_chain_image_definition,
)
from .static import run_static_chain

__all__ = [
    "ChainCallDefinition",
    "ChainContext",
    "ChainFieldDefinition",
    "ChainImageDefinition",
    "ChainVariableDefinition",
    "build_prompt_variables",
    "build_step_variables",
    "extract_value_from_result",
    "flatten_json_object",
    "parse_call_chain_path",
    "resolve_chain_field",
    "resolve_chain_image_definition",
    "run_dynamic_extract",
    "run_static_chain",
]
