"""ImgGo job API service package."""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import for type checkers only
    from fastapi import FastAPI


def create_app(*args: Any, **kwargs: Any) -> "FastAPI":
    """Return a FastAPI application instance.

    The import is performed lazily so that importing :mod:`deploy.api.app`
    does not pull in FastAPI, Redis and the job store until an application
    is actually built.
    """

    from .main import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = ["create_app"]
