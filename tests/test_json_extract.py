import pytest

from taskpilot.util.json_extract import (
    JsonExtractError,
    extract_first_json,
    find_balanced_object,
    looks_like_json,
)


def test_extracts_object_surrounded_by_prose():
    text = 'Sure, here you go:\n{"actions": [{"type": "read_file", "path": "a.py"}]}\nThanks!'
    parsed = extract_first_json(text)
    assert parsed == {"actions": [{"type": "read_file", "path": "a.py"}]}


def test_braces_inside_strings_do_not_change_depth():
    text = 'prefix {"type":"talk_with_user","content":"use { and } here"} suffix'
    assert find_balanced_object(text) == '{"type":"talk_with_user","content":"use { and } here"}'
    assert extract_first_json(text)["content"] == "use { and } here"


def test_escaped_quotes_keep_string_state():
    text = 'x {"content": "say \\"hi\\" {", "n": 1} y'
    assert extract_first_json(text) == {"content": 'say "hi" {', "n": 1}


def test_only_first_object_is_recovered():
    text = '{"a": 1} and then {"b": 2}'
    assert extract_first_json(text) == {"a": 1}


def test_code_fence_is_tolerated():
    text = '```json\n{"summary": "done"}\n```'
    assert extract_first_json(text) == {"summary": "done"}


def test_unbalanced_text_raises():
    with pytest.raises(JsonExtractError):
        extract_first_json('{"a": 1')
    with pytest.raises(JsonExtractError):
        extract_first_json("no json here")


def test_looks_like_json():
    assert looks_like_json(' {"a": 1} ')
    assert not looks_like_json("plain words")
