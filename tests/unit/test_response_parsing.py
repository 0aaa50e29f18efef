import pytest

from prompt_chain.response.parsing import parse_llm_json_response

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('{"a": 1}', {"a": 1}),
        ('  [1, {"b": 2}]  ', [1, {"b": 2}]),
        ('Here you go:\n```json\n{"a": 1}\n```\nThanks', {"a": 1}),
        ('```\n[{"x": true}]\n```', [{"x": True}]),
        ('Result: {"a": {"b": 2}} -- done', {"a": {"b": 2}}),
    ],
)
def test_extracts_json_containers(text: str, expected) -> None:
    assert parse_llm_json_response(text) == expected


@pytest.mark.parametrize(
    "text",
    [None, "", "42", "true", '"quoted"', "no json here", "{broken: json}", "} backwards {"],
)
def test_unparseable_or_scalar_is_none(text) -> None:
    assert parse_llm_json_response(text) is None


def test_code_block_preferred_over_braces_in_prose() -> None:
    text = 'Ignore {this}.\n```json\n{"picked": "block"}\n```'
    assert parse_llm_json_response(text) == {"picked": "block"}
