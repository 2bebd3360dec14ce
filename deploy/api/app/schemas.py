"""Pydantic models shared by API components."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from jobs.schemas import Job, JobStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobCreateRequest(BaseModel):
    """Validated submission of one image against one pattern."""

    pattern_id: str = Field(..., min_length=1, description="Pattern to apply")
    image_url: str = Field(..., description="Fetchable image reference or data URI")
    extras: dict[str, Any] = Field(default_factory=dict, description="Context passed to the model and webhooks")
    idempotency_key: str | None = Field(default=None, max_length=255)

    @field_validator("image_url")
    @classmethod
    def image_url_not_blank(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("image_url must not be empty")
        return trimmed

    model_config = {"extra": "forbid"}


class JobCreateResponse(BaseModel):
    """Response returned after a job is accepted."""

    job_id: str
    status: JobStatus = "queued"
    idempotent_replay: bool = False
    created_at: datetime


class JobView(BaseModel):
    """Polling view of a job."""

    id: str
    status: JobStatus
    manifest: Any = None
    error: str | None = None
    latency_ms: int | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job: Job, manifest: Any = None) -> "JobView":
        return cls(
            id=job.id,
            status=job.status,
            manifest=manifest,
            error=job.error,
            latency_ms=job.latency_ms,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class HealthResponse(BaseModel):
    """Simple health status payload."""

    status: Literal["ok"] = "ok"
    service: str
    time: datetime = Field(default_factory=_utc_now)
