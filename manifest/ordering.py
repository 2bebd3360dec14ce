"""Schema-driven key ordering for manifests.

The job store does not keep object key order, so manifests are put back into
the order the pattern author declared whenever they are read.
"""

from __future__ import annotations

import csv
from typing import Any, Iterable, Mapping

from jobs.schemas import Pattern

DEFAULT_OUTPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "analysis": {
            "type": "string",
            "description": "Comprehensive analysis of the image",
        },
        "extracted_data": {
            "type": "object",
            "description": "Key-value pairs of extracted information",
            "additionalProperties": True,
        },
    },
    "required": ["analysis", "extracted_data"],
    "additionalProperties": False,
}

_METADATA_KEYS = frozenset({"patternName"})


def build_output_schema(json_schema: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return the strict object schema the model must answer with."""

    if not json_schema:
        return dict(DEFAULT_OUTPUT_SCHEMA)

    properties = json_schema.get("properties")
    if isinstance(properties, Mapping):
        return {
            "type": "object",
            "properties": dict(properties),
            "required": list(json_schema.get("required") or []),
            "additionalProperties": False,
        }

    # Properties declared at the root instead of under "properties".
    if all(isinstance(value, Mapping) and "type" in value for value in json_schema.values()):
        return {
            "type": "object",
            "properties": dict(json_schema),
            "required": [key for key in json_schema if key not in _METADATA_KEYS],
            "additionalProperties": False,
        }

    return dict(json_schema)


def _declared_order(schema: Mapping[str, Any]) -> list[str]:
    order: list[str] = []
    for key in list(schema.get("required") or []) + list((schema.get("properties") or {}).keys()):
        if key not in order:
            order.append(key)
    return order


def _reorder_value(value: Any, schema: Any) -> Any:
    if not isinstance(schema, Mapping):
        return value
    if isinstance(value, dict):
        return reorder_manifest_keys(value, schema)
    if isinstance(value, list) and isinstance(schema.get("items"), Mapping):
        return [_reorder_value(item, schema["items"]) for item in value]
    return value


def reorder_manifest_keys(manifest: Any, schema: Mapping[str, Any] | None) -> Any:
    """Order keys as required fields, then other declared properties, then the rest.

    Nested objects and arrays of objects are reordered with their own property
    schemas. Values are never changed and no key is dropped.
    """

    if not isinstance(manifest, dict) or not isinstance(schema, Mapping):
        return manifest

    properties = schema.get("properties") or {}
    reordered: dict[str, Any] = {}
    for key in _declared_order(schema):
        if key in manifest:
            reordered[key] = _reorder_value(manifest[key], properties.get(key))
    for key, value in manifest.items():
        if key not in reordered:
            reordered[key] = value
    return reordered


def delimiter_char(csv_delimiter: str | None) -> str:
    return ";" if csv_delimiter == "semicolon" else ","


def csv_header(csv_schema: str | None, delimiter: str = ",") -> list[str]:
    """Column names from the first line of a pattern's CSV schema."""

    if not csv_schema or not csv_schema.strip():
        return []
    first_line = csv_schema.strip().splitlines()[0]
    row = next(csv.reader([first_line], delimiter=delimiter), [])
    return [name.strip().strip('"') for name in row if name.strip()]


def reorder_csv_rows(rows: Iterable[Any], header: list[str]) -> list[Any]:
    """Order each row's keys by ``header``; undeclared keys follow in original order."""

    reordered_rows: list[Any] = []
    for row in rows:
        if not isinstance(row, dict):
            reordered_rows.append(row)
            continue
        reordered = {name: row[name] for name in header if name in row}
        for key, value in row.items():
            if key not in reordered:
                reordered[key] = value
        reordered_rows.append(reordered)
    return reordered_rows


def restore_order(data: dict[str, Any], pattern: Pattern) -> dict[str, Any]:
    """Rebuild the declared key order of a structured manifest for ``pattern``."""

    if pattern.format == "json" and pattern.json_schema:
        return reorder_manifest_keys(data, build_output_schema(pattern.json_schema))
    if pattern.format == "csv" and pattern.csv_schema:
        rows = data.get("rows")
        if isinstance(rows, list) and rows:
            header = csv_header(pattern.csv_schema, delimiter_char(pattern.csv_delimiter))
            return {**data, "rows": reorder_csv_rows(rows, header)}
    return data
