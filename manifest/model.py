"""Tagged manifest representation.

Stored manifests are plain JSON objects. Legacy non-JSON results carry the
already rendered text under the reserved ``_raw``/``_format`` keys; the
converter works on the decoded variant instead of probing for those keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

RAW_KEY = "_raw"
FORMAT_KEY = "_format"


@dataclass(frozen=True, slots=True)
class StructuredManifest:
    data: dict[str, Any]


@dataclass(frozen=True, slots=True)
class RawManifest:
    text: str
    format: str
    structured: dict[str, Any] = field(default_factory=dict)

    @property
    def has_structured_data(self) -> bool:
        return bool(self.structured)

    def envelope(self) -> dict[str, Any]:
        return {RAW_KEY: self.text, FORMAT_KEY: self.format}


Manifest = Union[StructuredManifest, RawManifest]


def from_stored(value: dict[str, Any]) -> Manifest:
    raw = value.get(RAW_KEY)
    if isinstance(raw, str):
        structured = {k: v for k, v in value.items() if k not in (RAW_KEY, FORMAT_KEY)}
        return RawManifest(text=raw, format=str(value.get(FORMAT_KEY) or ""), structured=structured)
    return StructuredManifest(dict(value))


def to_stored(manifest: Manifest) -> dict[str, Any]:
    if isinstance(manifest, RawManifest):
        return {**manifest.structured, **manifest.envelope()}
    return dict(manifest.data)
