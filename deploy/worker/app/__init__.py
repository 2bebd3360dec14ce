"""ImgGo extraction worker service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - import only for type checking
    from .processor import ManifestProcessor
    from .worker import Worker

__all__ = ["ManifestProcessor", "Worker"]


def __getattr__(name: str) -> Any:  # pragma: no cover - dynamic import helper
    if name == "Worker":
        from .worker import Worker

        return Worker
    if name == "ManifestProcessor":
        from .processor import ManifestProcessor

        return ManifestProcessor
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
