from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, List, Optional

from app.errors import NotFoundError, StoreWriteFailure
from jobs import schemas
from jobs.store import Database
from webhooks.signing import generate_secret


_JOB_COLUMNS = (
    "id, pattern_id, user_id, image_url, extras, idempotency_key, status, manifest, error, "
    "latency_ms, created_at, started_at, completed_at, updated_at"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat()


def _dump(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _load(value: Optional[str]) -> Any:
    if value is None:
        return None
    return json.loads(value)


class JobStore:
    """Row-scoped access to jobs, patterns and webhook subscriptions.

    Every write touches a single row. Terminal job writes are conditional on the
    row still being non-terminal so a late duplicate attempt cannot overwrite a
    result that another attempt already recorded.
    """

    def __init__(self, db_url: str) -> None:
        self.db = Database(db_url)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.db.connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _writing(self, what: str, row_id: str) -> Iterator[sqlite3.Connection]:
        try:
            with self._connection() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StoreWriteFailure(f"{what} failed for {row_id}: {exc}") from exc

    # Jobs

    def create_job(self, data: schemas.JobCreate) -> schemas.Job:
        job_id = str(uuid.uuid4())
        now = _iso(utc_now())
        with self._writing("create job", job_id) as conn:
            conn.execute(
                f"INSERT INTO jobs({_JOB_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, 'queued', NULL, NULL, NULL, ?, NULL, NULL, ?)",
                (
                    job_id,
                    data.pattern_id,
                    data.user_id,
                    data.image_url,
                    _dump(data.extras),
                    data.idempotency_key,
                    now,
                    now,
                ),
            )
        return self.get_job(job_id)

    def get_job(self, job_id: str) -> schemas.Job:
        job = self.find_job(job_id)
        if job is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return job

    def find_job(self, job_id: str) -> Optional[schemas.Job]:
        with self._connection() as conn:
            row = conn.execute(f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id=?", (job_id,)).fetchone()
        return self._row_to_job(row) if row else None

    def find_job_by_idempotency_key(self, user_id: str, key: str) -> Optional[schemas.Job]:
        with self._connection() as conn:
            row = conn.execute(
                f"SELECT {_JOB_COLUMNS} FROM jobs WHERE user_id=? AND idempotency_key=?",
                (user_id, key),
            ).fetchone()
        return self._row_to_job(row) if row else None

    def list_jobs_by_status(self, status: schemas.JobStatus, limit: int = 500) -> List[schemas.Job]:
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT {_JOB_COLUMNS} FROM jobs WHERE status=? ORDER BY created_at LIMIT ?",
                (status, limit),
            ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def mark_running(self, job_id: str) -> bool:
        """Move a non-terminal job to ``running``. Returns False when nothing changed."""
        now = _iso(utc_now())
        with self._writing("mark running", job_id) as conn:
            updated = conn.execute(
                """
                UPDATE jobs SET status='running', started_at=?, updated_at=?
                WHERE id=? AND status IN ('queued','running')
                """,
                (now, now, job_id),
            ).rowcount
        return updated > 0

    def complete_job(
        self, job_id: str, manifest: dict[str, Any], latency_ms: int
    ) -> Optional[schemas.Job]:
        """Record success. Returns None when the job was already terminal."""
        now = _iso(utc_now())
        with self._writing("complete job", job_id) as conn:
            updated = conn.execute(
                """
                UPDATE jobs
                SET status='succeeded', manifest=?, error=NULL, latency_ms=?,
                    started_at=COALESCE(started_at, ?), completed_at=?, updated_at=?
                WHERE id=? AND status IN ('queued','running')
                """,
                (_dump(manifest), latency_ms, now, now, now, job_id),
            ).rowcount
        return self._after_terminal_write(job_id, updated)

    def fail_job(self, job_id: str, error: str, latency_ms: int) -> Optional[schemas.Job]:
        """Record failure. Returns None when the job was already terminal."""
        now = _iso(utc_now())
        with self._writing("fail job", job_id) as conn:
            updated = conn.execute(
                """
                UPDATE jobs
                SET status='failed', manifest=NULL, error=?, latency_ms=?,
                    started_at=COALESCE(started_at, ?), completed_at=?, updated_at=?
                WHERE id=? AND status IN ('queued','running')
                """,
                (error, latency_ms, now, now, now, job_id),
            ).rowcount
        return self._after_terminal_write(job_id, updated)

    def _after_terminal_write(self, job_id: str, updated: int) -> Optional[schemas.Job]:
        job = self.find_job(job_id)
        if job is None:
            raise StoreWriteFailure(f"Job not found: {job_id}")
        if updated == 0:
            return None
        return job

    # Patterns

    def create_pattern(self, data: schemas.PatternCreate) -> schemas.Pattern:
        pattern_id = str(uuid.uuid4())
        with self._writing("create pattern", pattern_id) as conn:
            conn.execute(
                """
                INSERT INTO patterns(id, user_id, name, format, instructions, json_schema, csv_schema,
                                     csv_delimiter, model_profile, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pattern_id,
                    data.user_id,
                    data.name,
                    data.format,
                    data.instructions,
                    _dump(data.json_schema),
                    data.csv_schema,
                    data.csv_delimiter,
                    data.model_profile,
                    _iso(utc_now()),
                ),
            )
        return schemas.Pattern(id=pattern_id, **data.model_dump())

    def get_pattern(self, pattern_id: str) -> Optional[schemas.Pattern]:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, name, format, instructions, json_schema, csv_schema,
                       csv_delimiter, model_profile
                FROM patterns WHERE id=?
                """,
                (pattern_id,),
            ).fetchone()
        if not row:
            return None
        return schemas.Pattern(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            format=row["format"],
            instructions=row["instructions"],
            json_schema=_load(row["json_schema"]),
            csv_schema=row["csv_schema"],
            csv_delimiter=row["csv_delimiter"],
            model_profile=row["model_profile"],
        )

    # Webhooks

    def create_webhook(self, data: schemas.WebhookCreate) -> schemas.Webhook:
        webhook_id = str(uuid.uuid4())
        secret = data.secret or generate_secret()
        created_at = utc_now()
        with self._writing("create webhook", webhook_id) as conn:
            conn.execute(
                """
                INSERT INTO webhooks(id, user_id, url, secret, events, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, 1, ?)
                """,
                (webhook_id, data.user_id, data.url, secret, json.dumps(data.events), _iso(created_at)),
            )
        return schemas.Webhook(
            id=webhook_id,
            user_id=data.user_id,
            url=data.url,
            secret=secret,
            events=data.events,
            created_at=created_at,
        )

    def set_webhook_active(self, webhook_id: str, is_active: bool) -> None:
        with self._writing("update webhook", webhook_id) as conn:
            updated = conn.execute(
                "UPDATE webhooks SET is_active=? WHERE id=?", (int(is_active), webhook_id)
            ).rowcount
        if updated == 0:
            raise NotFoundError(f"Webhook not found: {webhook_id}")

    def get_webhook(self, webhook_id: str) -> schemas.Webhook:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM webhooks WHERE id=?", (webhook_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Webhook not found: {webhook_id}")
        return self._row_to_webhook(row)

    def list_active_webhooks(self, user_id: str, event: str) -> List[schemas.Webhook]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM webhooks WHERE user_id=? AND is_active=1 ORDER BY created_at",
                (user_id,),
            ).fetchall()
        webhooks = [self._row_to_webhook(row) for row in rows]
        return [webhook for webhook in webhooks if event in webhook.events]

    def touch_webhook(self, webhook_id: str) -> None:
        with self._writing("touch webhook", webhook_id) as conn:
            conn.execute(
                "UPDATE webhooks SET last_triggered_at=? WHERE id=?",
                (_iso(utc_now()), webhook_id),
            )

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> schemas.Job:
        return schemas.Job(
            id=row["id"],
            pattern_id=row["pattern_id"],
            user_id=row["user_id"],
            image_url=row["image_url"],
            extras=_load(row["extras"]) or {},
            idempotency_key=row["idempotency_key"],
            status=row["status"],
            manifest=_load(row["manifest"]),
            error=row["error"],
            latency_ms=row["latency_ms"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_webhook(row: sqlite3.Row) -> schemas.Webhook:
        return schemas.Webhook(
            id=row["id"],
            user_id=row["user_id"],
            url=row["url"],
            secret=row["secret"],
            events=json.loads(row["events"]),
            is_active=bool(row["is_active"]),
            created_at=row["created_at"],
            last_triggered_at=row["last_triggered_at"],
        )


__all__ = ["JobStore", "utc_now"]
