"""Read-path rendering of stored manifests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from jobs.schemas import Pattern

from .convert import content_type_for, convert_manifest
from .model import RawManifest, from_stored
from .ordering import restore_order


@dataclass(frozen=True, slots=True)
class RenderedManifest:
    format: str
    content_type: str
    body: Union[dict[str, Any], str]

    @property
    def is_text(self) -> bool:
        return isinstance(self.body, str)


def render_manifest(
    stored: dict[str, Any], pattern: Pattern, requested_format: str | None = None
) -> RenderedManifest:
    """Return ``stored`` in the caller's format, restoring declared key order first.

    JSON requests get structured data. A legacy raw envelope is returned as-is
    to JSON callers only when it is the sole data available, and its text is
    returned verbatim to any non-JSON request.
    """

    fmt = requested_format or "json"
    manifest = from_stored(stored)

    if isinstance(manifest, RawManifest):
        if fmt != "json":
            return RenderedManifest(fmt, content_type_for(fmt), manifest.text)
        if manifest.has_structured_data:
            return RenderedManifest(fmt, content_type_for(fmt), restore_order(manifest.structured, pattern))
        return RenderedManifest(fmt, content_type_for(fmt), manifest.envelope())

    data = restore_order(manifest.data, pattern)
    if fmt == "json":
        return RenderedManifest(fmt, content_type_for(fmt), data)
    text = convert_manifest(data, fmt, pattern.csv_delimiter, pattern.csv_schema)
    return RenderedManifest(fmt, content_type_for(fmt), text)
