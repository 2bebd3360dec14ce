from __future__ import annotations

import csv
import io
import json
import xml.etree.ElementTree as ET

import pytest
import yaml

from jobs.schemas import Pattern
from manifest import (
    RawManifest,
    StructuredManifest,
    content_type_for,
    convert_manifest,
    from_stored,
    render_manifest,
    to_stored,
)

MANIFEST = {
    "vendor": "ACME",
    "total": 12.5,
    "paid": True,
    "notes": None,
    "items": [{"sku": "A", "qty": 1}, {"sku": "B", "qty": 2}],
}


def _pattern(fmt: str = "json", **overrides) -> Pattern:
    data = {"id": "p1", "user_id": "u1", "instructions": "Extract.", "format": fmt}
    data.update(overrides)
    return Pattern(**data)


@pytest.mark.parametrize(
    ("fmt", "expected"),
    [
        ("json", "application/json"),
        ("yaml", "application/x-yaml"),
        ("xml", "application/xml"),
        ("csv", "text/csv"),
        ("text", "text/plain"),
    ],
)
def test_content_types(fmt: str, expected: str) -> None:
    assert content_type_for(fmt) == expected


def test_json_round_trip() -> None:
    assert json.loads(convert_manifest(MANIFEST, "json")) == MANIFEST


def test_yaml_keeps_key_order_and_data() -> None:
    rendered = convert_manifest(MANIFEST, "yaml")

    assert yaml.safe_load(rendered) == MANIFEST
    assert rendered.index("vendor") < rendered.index("total") < rendered.index("items")


def test_xml_uses_manifest_root_and_repeats_list_elements() -> None:
    rendered = convert_manifest({"vendor": "ACME", "paid": False, "items": [{"sku": "A"}, {"sku": "B"}]}, "xml")

    assert rendered.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    root = ET.fromstring(rendered.split("\n", 1)[1])
    assert root.tag == "manifest"
    assert root.findtext("vendor") == "ACME"
    assert root.findtext("paid") == "false"
    assert [item.findtext("sku") for item in root.findall("items")] == ["A", "B"]


def test_xml_sanitises_element_names() -> None:
    root = ET.fromstring(convert_manifest({"1st value": "x"}, "xml").split("\n", 1)[1])

    assert root.findtext("_1st_value") == "x"


def test_csv_rows_use_pattern_header_and_delimiter() -> None:
    rendered = convert_manifest(
        {"rows": [{"age": 5, "name": "A", "member": True}, {"name": "B", "age": 9, "member": False}]},
        "csv",
        csv_delimiter="semicolon",
        csv_schema="name;age;member",
    )

    assert rendered == "A;5;True\nB;9;False"


def test_csv_without_rows_flattens_fields() -> None:
    rendered = convert_manifest({"vendor": {"name": "ACME", "city": "Oslo"}, "total": 3}, "csv")

    records = list(csv.reader(io.StringIO(rendered)))
    assert records == [["field", "value"], ["vendor.name", "ACME"], ["vendor.city", "Oslo"], ["total", "3"]]


def test_text_rendering() -> None:
    rendered = convert_manifest(
        {"store_name": "ACME", "paid": True, "notes": None, "tags": [], "extra": {}},
        "text",
    )

    assert rendered.splitlines() == [
        "store name: ACME",
        "paid: yes",
        "notes: null",
        "tags: (none)",
        "extra: (empty)",
    ]


def test_text_manifest_is_returned_verbatim() -> None:
    assert convert_manifest({"text": "line one\nline two"}, "text") == "line one\nline two"


def test_stored_manifest_variants() -> None:
    assert from_stored({"a": 1}) == StructuredManifest({"a": 1})

    raw = from_stored({"_raw": "a: 1\n", "_format": "yaml"})
    assert raw == RawManifest(text="a: 1\n", format="yaml")
    assert not raw.has_structured_data
    assert to_stored(raw) == {"_raw": "a: 1\n", "_format": "yaml"}


def test_render_structured_json_restores_schema_order() -> None:
    pattern = _pattern(json_schema={"required": ["a", "b"], "properties": {"b": {}, "a": {}}})

    rendered = render_manifest({"b": "x", "a": "y"}, pattern)

    assert rendered.content_type == "application/json"
    assert list(rendered.body) == ["a", "b"]


def test_render_structured_as_requested_text_format() -> None:
    rendered = render_manifest({"vendor": "ACME"}, _pattern("yaml"), "yaml")

    assert rendered.is_text
    assert rendered.content_type == "application/x-yaml"
    assert yaml.safe_load(rendered.body) == {"vendor": "ACME"}


def test_render_raw_envelope_returns_text_for_non_json_request() -> None:
    stored = {"_raw": "<manifest/>", "_format": "xml", "vendor": "ACME"}

    rendered = render_manifest(stored, _pattern("xml"), "xml")

    assert rendered.body == "<manifest/>"
    assert rendered.content_type == "application/xml"


def test_render_raw_envelope_for_json_prefers_structured_data() -> None:
    stored = {"_raw": "vendor: ACME\n", "_format": "yaml", "vendor": "ACME"}

    assert render_manifest(stored, _pattern("yaml"), "json").body == {"vendor": "ACME"}


def test_render_raw_envelope_only_for_json_returns_envelope() -> None:
    stored = {"_raw": "vendor: ACME\n", "_format": "yaml"}

    assert render_manifest(stored, _pattern("yaml"), "json").body == stored
