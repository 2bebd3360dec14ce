from __future__ import annotations

import json
from typing import Any, Mapping

from app.errors import InferenceFailure


def extract_content(response: Mapping[str, Any]) -> str:
    choices = response.get("choices") or []
    if not choices:
        raise InferenceFailure("No choices in model response")
    message = choices[0].get("message") or {}
    if message.get("refusal"):
        raise InferenceFailure(f"Model refused the request: {message['refusal']}")
    content = message.get("content")
    if not content:
        raise InferenceFailure("No content in model response")
    return content


def parse_manifest(content: str, schema: Mapping[str, Any]) -> dict[str, Any]:
    """Decode the model's structured output and check it against ``schema``."""

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise InferenceFailure(f"Model returned malformed JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise InferenceFailure("Model output is not a JSON object")

    missing = [key for key in schema.get("required") or [] if key not in payload]
    if missing:
        raise InferenceFailure(f"Model output is missing required fields: {', '.join(missing)}")

    if schema.get("additionalProperties") is False:
        declared = set((schema.get("properties") or {}).keys())
        unexpected = [key for key in payload if key not in declared]
        if unexpected:
            raise InferenceFailure(f"Model output has undeclared fields: {', '.join(unexpected)}")
    return payload
