"""Render structured manifests as JSON, YAML, XML, CSV or plain text."""

from __future__ import annotations

import csv
import io
import json
import re
import xml.etree.ElementTree as ET
from typing import Any

import yaml

from .ordering import csv_header, delimiter_char

CONTENT_TYPES: dict[str, str] = {
    "json": "application/json",
    "yaml": "application/x-yaml",
    "xml": "application/xml",
    "csv": "text/csv",
    "text": "text/plain",
}

_XML_NAME_INVALID = re.compile(r"[^A-Za-z0-9_.-]")


class ConversionError(ValueError):
    """Raised when a manifest cannot be rendered in the requested format."""


def content_type_for(fmt: str) -> str:
    return CONTENT_TYPES.get(fmt, CONTENT_TYPES["json"])


def convert_manifest(
    manifest: dict[str, Any],
    fmt: str,
    csv_delimiter: str | None = "comma",
    csv_schema: str | None = None,
) -> str:
    try:
        if fmt == "yaml":
            return to_yaml(manifest)
        if fmt == "xml":
            return to_xml(manifest)
        if fmt == "csv":
            return to_csv(manifest, csv_delimiter, csv_schema)
        if fmt == "text":
            return to_text(manifest)
        return json.dumps(manifest, indent=2, ensure_ascii=False)
    except (TypeError, ValueError, yaml.YAMLError, csv.Error) as exc:
        raise ConversionError(f"Failed to convert to {fmt.upper()}: {exc}") from exc


def to_yaml(manifest: dict[str, Any]) -> str:
    return yaml.safe_dump(
        manifest,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )


def _xml_name(key: str) -> str:
    name = _XML_NAME_INVALID.sub("_", str(key)) or "_"
    if not (name[0].isalpha() or name[0] == "_") or name.lower().startswith("xml"):
        name = f"_{name}"
    return name


def _xml_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _append_xml(parent: ET.Element, key: str, value: Any) -> None:
    if isinstance(value, list):
        for item in value:
            _append_xml(parent, key, item)
        return
    element = ET.SubElement(parent, _xml_name(key))
    if isinstance(value, dict):
        for child_key, child_value in value.items():
            _append_xml(element, child_key, child_value)
    elif value is not None:
        element.text = _xml_text(value)


def to_xml(manifest: dict[str, Any]) -> str:
    root = ET.Element("manifest")
    for key, value in manifest.items():
        _append_xml(root, key, value)
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}'


def _csv_cell(value: Any) -> Any:
    if isinstance(value, bool):
        return "True" if value else "False"
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def _flatten(obj: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    flattened: dict[str, Any] = {}
    for key, value in obj.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and value:
            flattened.update(_flatten(value, name))
        else:
            flattened[name] = value
    return flattened


def to_csv(
    manifest: dict[str, Any], csv_delimiter: str | None = "comma", csv_schema: str | None = None
) -> str:
    delimiter = delimiter_char(csv_delimiter)
    buffer = io.StringIO()
    rows = manifest.get("rows")

    if isinstance(rows, list) and rows and all(isinstance(row, dict) for row in rows):
        fields = csv_header(csv_schema, delimiter)
        if not fields:
            for row in rows:
                for key in row:
                    if key not in fields:
                        fields.append(key)
        writer = csv.DictWriter(
            buffer, fieldnames=fields, delimiter=delimiter, extrasaction="ignore", lineterminator="\n"
        )
        # the header line belongs to the pattern's CSV schema, not the manifest
        for row in rows:
            writer.writerow({key: _csv_cell(value) for key, value in row.items()})
        return buffer.getvalue().removesuffix("\n")

    writer = csv.writer(buffer, delimiter=delimiter, lineterminator="\n")
    writer.writerow(["field", "value"])
    for key, value in _flatten(manifest).items():
        writer.writerow([key, _csv_cell(value)])
    return buffer.getvalue().removesuffix("\n")


def _format_text(value: Any, indent: int) -> str:
    pad = "  " * indent
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (int, float, str)):
        return str(value)
    if isinstance(value, list):
        if not value:
            return "(none)"
        return "\n".join(f"{pad}- {_format_text(item, indent + 1)}" for item in value)
    if isinstance(value, dict):
        if not value:
            return "(empty)"
        lines = []
        for key, item in value.items():
            label = str(key).replace("_", " ")
            rendered = _format_text(item, indent + 1)
            if "\n" in rendered:
                lines.append(f"{pad}{label}:\n{rendered}")
            else:
                lines.append(f"{pad}{label}: {rendered}")
        return "\n".join(lines)
    return str(value)


def to_text(manifest: dict[str, Any]) -> str:
    if set(manifest) == {"text"} and isinstance(manifest["text"], str):
        return manifest["text"]
    return _format_text(manifest, 0)
