"""Manifest ordering, rendering and content negotiation."""

from .convert import content_type_for, convert_manifest
from .model import Manifest, RawManifest, StructuredManifest, from_stored, to_stored
from .ordering import (
    build_output_schema,
    reorder_csv_rows,
    reorder_manifest_keys,
    restore_order,
)
from .render import RenderedManifest, render_manifest

__all__ = [
    "Manifest",
    "RawManifest",
    "RenderedManifest",
    "StructuredManifest",
    "build_output_schema",
    "content_type_for",
    "convert_manifest",
    "from_stored",
    "render_manifest",
    "reorder_csv_rows",
    "reorder_manifest_keys",
    "restore_order",
    "to_stored",
]
