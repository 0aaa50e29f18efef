import pytest

from prompt_chain.core.jsonpath import (
    MISSING,
    extract_jsonpath_raw,
    extract_jsonpath_value,
    is_valid_jsonpath,
    parse_jsonpath_segments,
    stringify_json_value,
)

pytestmark = pytest.mark.unit

DOCUMENT = {
    "document_type": "invoice",
    "data": {
        "total": 100,
        "ratio": 0.25,
        "items": [{"name": "bolt", "qty": 3}, {"name": "nut", "qty": None}],
        "flags": {"urgent": False},
    },
    "empty": None,
}


@pytest.mark.parametrize(
    "path",
    ["$.field", "$.nested.field", "$.items[0]", "$.items[0].name", "$._x.y_2[10]"],
)
def test_valid_paths(path: str) -> None:
    assert is_valid_jsonpath(path) is True


@pytest.mark.parametrize(
    "path",
    [
        "",
        "$",
        "$.",
        "$document_type",
        "document_type",
        "$.items[*]",
        "$..name",
        "$.items[-1]",
        "$.items[0:2]",
        "$.1abc",
        None,
        42,
    ],
)
def test_invalid_paths(path: object) -> None:
    assert is_valid_jsonpath(path) is False


def test_parse_segments() -> None:
    assert parse_jsonpath_segments("$.data.items[0].name") == ["data", "items", 0, "name"]
    assert parse_jsonpath_segments("$.a[1][2]") == ["a", 1, 2]


def test_parse_segments_tolerates_malformed_brackets() -> None:
    assert parse_jsonpath_segments("$.a[x].b") == ["a", "b"]
    assert parse_jsonpath_segments("$.a[1") == ["a", "[1"]


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("$.document_type", "invoice"),
        ("$.data.total", "100"),
        ("$.data.ratio", "0.25"),
        ("$.data.items[1].name", "nut"),
        ("$.data.flags.urgent", "false"),
        ("$.data.items[0]", '{"name":"bolt","qty":3}'),
        ("$.data.flags", '{"urgent":false}'),
    ],
)
def test_extract_value_stringifies(path: str, expected: str) -> None:
    assert extract_jsonpath_value(DOCUMENT, path) == expected


@pytest.mark.parametrize(
    "path",
    [
        "$.missing",
        "$.data.items[2].name",
        "$.data.total.deeper",
        "$.document_type[0]",
        "$.data[0]",
        "$.empty",
        "$.empty.child",
        "$.data.items[1].qty",
        "$document_type",
    ],
)
def test_extract_value_not_found_is_none(path: str) -> None:
    assert extract_jsonpath_value(DOCUMENT, path) is None


def test_extract_raw_distinguishes_null_from_missing() -> None:
    assert extract_jsonpath_raw(DOCUMENT, "$.empty") is None
    assert extract_jsonpath_raw(DOCUMENT, "$.nope") is MISSING
    assert extract_jsonpath_raw(DOCUMENT, "$.data.total") == 100


def test_extract_from_non_container_root() -> None:
    assert extract_jsonpath_raw("text", "$.a") is MISSING
    assert extract_jsonpath_raw(None, "$.a") is MISSING
    assert extract_jsonpath_value([{"a": 1}], "$.a") is None


def test_missing_is_falsy_and_distinct_from_none() -> None:
    assert not MISSING
    assert MISSING is not None
    assert repr(MISSING) == "MISSING"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, "null"),
        (MISSING, "null"),
        (True, "true"),
        (False, "false"),
        (7, "7"),
        (7.0, "7"),
        (-2.5, "-2.5"),
        ("già", "già"),
        ([1, "a"], '[1,"a"]'),
        ({"k": "é"}, '{"k":"é"}'),
    ],
)
def test_stringify(value: object, expected: str) -> None:
    assert stringify_json_value(value) == expected
