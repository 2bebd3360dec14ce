from __future__ import annotations

import pytest

from app.errors import InferenceFailure
from llm.parsers import extract_content, parse_manifest

SCHEMA = {
    "type": "object",
    "properties": {"a": {"type": "string"}, "b": {"type": "string"}},
    "required": ["a", "b"],
    "additionalProperties": False,
}


def _response(content, refusal=None):
    return {"choices": [{"message": {"content": content, "refusal": refusal}}]}


def test_parse_clean_json():
    result = parse_manifest(extract_content(_response('{"b": "x", "a": "y"}')), SCHEMA)
    assert result == {"a": "y", "b": "x"}


def test_missing_choices_and_refusal():
    with pytest.raises(InferenceFailure):
        extract_content({"choices": []})
    with pytest.raises(InferenceFailure, match="refused"):
        extract_content(_response(None, refusal="I cannot help with that"))
    with pytest.raises(InferenceFailure):
        extract_content(_response(""))


def test_parse_failure():
    with pytest.raises(InferenceFailure, match="malformed JSON"):
        parse_manifest("no json here", SCHEMA)
    with pytest.raises(InferenceFailure, match="not a JSON object"):
        parse_manifest("[1, 2]", SCHEMA)


def test_required_and_undeclared_fields():
    with pytest.raises(InferenceFailure, match="missing required fields: b"):
        parse_manifest('{"a": "y"}', SCHEMA)
    with pytest.raises(InferenceFailure, match="undeclared fields: c"):
        parse_manifest('{"a": "y", "b": "x", "c": 1}', SCHEMA)


def test_open_schema_allows_extra_fields():
    schema = {"type": "object", "properties": {"a": {}}, "required": ["a"]}
    assert parse_manifest('{"a": 1, "extra": 2}', schema) == {"a": 1, "extra": 2}
