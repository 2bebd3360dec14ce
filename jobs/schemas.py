from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

JobStatus = Literal["queued", "running", "succeeded", "failed"]
ManifestFormat = Literal["json", "yaml", "xml", "csv", "text"]
CsvDelimiter = Literal["comma", "semicolon"]
WebhookEvent = Literal["job.succeeded", "job.failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"succeeded", "failed"})


class Job(BaseModel):
    id: str
    pattern_id: str
    user_id: str
    image_url: str
    extras: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None
    status: JobStatus = "queued"
    manifest: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    latency_ms: Optional[int] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class JobCreate(BaseModel):
    pattern_id: str
    user_id: str
    image_url: str
    extras: dict[str, Any] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None

    @field_validator("image_url")
    @classmethod
    def image_url_not_blank(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("image_url must not be empty")
        return trimmed


class Pattern(BaseModel):
    """Read-only extraction configuration owned by a user."""

    id: str
    user_id: str
    name: str = ""
    format: ManifestFormat = "json"
    instructions: str
    json_schema: Optional[dict[str, Any]] = None
    csv_schema: Optional[str] = None
    csv_delimiter: CsvDelimiter = "comma"
    model_profile: str = "managed-default"


class PatternCreate(BaseModel):
    user_id: str
    name: str = ""
    format: ManifestFormat = "json"
    instructions: str
    json_schema: Optional[dict[str, Any]] = None
    csv_schema: Optional[str] = None
    csv_delimiter: CsvDelimiter = "comma"
    model_profile: str = "managed-default"


class Webhook(BaseModel):
    id: str
    user_id: str
    url: str
    secret: str
    events: list[WebhookEvent]
    is_active: bool = True
    created_at: datetime
    last_triggered_at: Optional[datetime] = None


class WebhookCreate(BaseModel):
    user_id: str
    url: str
    secret: Optional[str] = None
    events: list[WebhookEvent] = Field(default_factory=lambda: ["job.succeeded", "job.failed"])


class QueuePayload(BaseModel):
    """Wire shape of a queued job message."""

    job_id: str
    pattern_id: str
    image_url: str
    extras: dict[str, Any] = Field(default_factory=dict)


class QueueMessage(BaseModel):
    msg_id: int
    read_ct: int
    enqueued_at: datetime
    vt: datetime
    message: QueuePayload


class QueueMetrics(BaseModel):
    queue_name: str
    queue_length: int
    visible: int
    leased: int
    archived: int
    oldest_msg_age_sec: Optional[float] = None
