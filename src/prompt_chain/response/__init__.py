"""
Response parsing for model output

Turns raw model text into JSON values the chain runners can route on and merge.
"""  # noqa: D212, D415

from .parsing import parse_llm_json_response

__all__ = ["parse_llm_json_response"]
