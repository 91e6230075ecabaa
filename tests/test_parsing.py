import pytest

from chordflow.acquisition.parsing import extract_json, find_json_span, strip_code_fences
from chordflow.exceptions import (
    EmptyResponseError,
    InvalidStructuredDataError,
    NoStructuredDataError,
    ParseError,
)

# ---------------------------------------------------------------------------
# extract_json: success
# ---------------------------------------------------------------------------


def test_plain_json():
    assert extract_json('{"a": 1}') == {"a": 1}


def test_code_fenced_json():
    assert extract_json('```json\n{"a":1}\n```') == {"a": 1}


def test_bare_code_fence():
    assert extract_json('```\n[1, 2]\n```') == [1, 2]


def test_prose_around_object():
    assert extract_json('Here is the result: {"a":1} — hope that helps') == {"a": 1}


def test_array_of_objects():
    text = 'Found these:\n[{"title": "A"}, {"title": "B"}]\nEnjoy!'
    assert extract_json(text) == [{"title": "A"}, {"title": "B"}]


def test_nested_braces_use_last_closer():
    assert extract_json('x {"a": {"b": [1, {"c": 2}]}} y') == {"a": {"b": [1, {"c": 2}]}}


def test_chord_brackets_inside_string_values():
    text = '{"content": "[G]Amazing [C]grace"}'
    assert extract_json(text) == {"content": "[G]Amazing [C]grace"}


def test_object_first_when_brace_precedes_bracket():
    assert extract_json('{"items": [1, 2]}') == {"items": [1, 2]}


# ---------------------------------------------------------------------------
# extract_json: failures are distinguishable
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text", [None, "", "   \n"])
def test_no_response(text):
    with pytest.raises(EmptyResponseError, match="no response"):
        extract_json(text)


def test_no_structured_data():
    with pytest.raises(NoStructuredDataError, match="no structured data found"):
        extract_json("no data here")


def test_closer_before_opener_is_no_data():
    with pytest.raises(NoStructuredDataError):
        extract_json("} nothing {")


def test_invalid_structured_data():
    with pytest.raises(InvalidStructuredDataError, match="invalid structured data"):
        extract_json("Result: {title: 'unquoted'}")


def test_all_failures_are_parse_errors():
    for text in (None, "nothing", "{oops}"):
        with pytest.raises(ParseError):
            extract_json(text)


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def test_strip_code_fences():
    assert strip_code_fences("```json\n{}\n```").strip() == "{}"


def test_find_json_span():
    text = 'abc {"a": 1} def'
    start, end = find_json_span(text)
    assert text[start:end] == '{"a": 1}'


def test_find_json_span_none():
    assert find_json_span("plain text") is None
