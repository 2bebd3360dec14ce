"""Worker runtime loop."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from app.errors import PatternNotFound, QueueUnavailable, StoreWriteFailure
from app.logging import log_event
from app.settings import Settings, get_settings
from jobs.queue import RedisQueue
from jobs.schemas import Job, QueueMessage
from jobs.service import JobStore
from webhooks.dispatcher import WebhookDispatcher

from .processor import ManifestProcessor

LOGGER = logging.getLogger("imggo.worker")

Outcome = Literal["succeeded", "failed", "duplicate", "orphaned", "deferred"]


@dataclass(slots=True)
class WorkerRunSummary:
    leased: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)

    def record(self, outcome: str) -> None:
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1


class Worker:
    """Leases job messages and drives each job to a terminal state."""

    def __init__(
        self,
        queue: RedisQueue,
        store: JobStore,
        processor: ManifestProcessor | None = None,
        dispatcher: WebhookDispatcher | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._queue = queue
        self._store = store
        self._processor = processor or ManifestProcessor(self._settings)
        self._dispatcher = dispatcher or WebhookDispatcher(
            store,
            timeout=self._settings.webhook_timeout_seconds,
            user_agent=self._settings.webhook_user_agent,
        )
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        self._stopping.set()

    async def run_forever(self) -> None:
        LOGGER.info(
            "worker started",
            extra={
                "service": self._settings.service_name,
                "queue": self._queue.queue_name,
                "batch_size": self._settings.batch_size,
            },
        )
        backoff = 1.0
        while not self._stopping.is_set():
            try:
                summary = await self.run_once()
            except QueueUnavailable as exc:
                LOGGER.error("queue unavailable", extra={"error": str(exc), "retry_in": backoff})
                await self._sleep(backoff)
                backoff = min(backoff * 2, self._settings.max_backoff_seconds)
                continue
            backoff = 1.0
            if summary.leased == 0:
                await self._sleep(self._settings.poll_interval_seconds)
        LOGGER.info("worker stopped", extra={"service": self._settings.service_name})

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> WorkerRunSummary:
        """Lease one batch and process it. Raises QueueUnavailable if the lease fails."""

        messages = await self._queue.lease(
            self._settings.visibility_timeout_seconds, self._settings.batch_size
        )
        summary = WorkerRunSummary(leased=len(messages))
        if not messages:
            return summary

        if self._settings.parallel_batch:
            outcomes = await asyncio.gather(
                *(self.handle_message(message) for message in messages),
                return_exceptions=True,
            )
        else:
            outcomes = []
            for message in messages:
                try:
                    outcomes.append(await self.handle_message(message))
                except Exception as exc:
                    outcomes.append(exc)

        for message, outcome in zip(messages, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.error(
                    "message handling crashed",
                    extra={"msg_id": message.msg_id, "job_id": message.message.job_id, "error": str(outcome)},
                )
                summary.record("deferred")
            else:
                summary.record(outcome)
        return summary

    async def handle_message(self, message: QueueMessage) -> Outcome:
        payload = message.message
        job = await asyncio.to_thread(self._store.find_job, payload.job_id)
        if job is None:
            log_event(
                LOGGER,
                "job.missing",
                level=logging.ERROR,
                job_id=payload.job_id,
                msg_id=message.msg_id,
            )
            await self._archive(message)
            return "orphaned"
        if job.is_terminal:
            await self._settle_duplicate(message, job)
            return "duplicate"

        log_event(
            LOGGER,
            "job.started",
            job_id=job.id,
            pattern_id=payload.pattern_id,
            msg_id=message.msg_id,
            read_ct=message.read_ct,
        )
        try:
            await asyncio.to_thread(self._store.mark_running, job.id)
        except StoreWriteFailure as exc:
            LOGGER.warning("running transition not persisted", extra={"job_id": job.id, "error": str(exc)})

        started = time.monotonic()
        try:
            pattern = await asyncio.to_thread(self._store.get_pattern, payload.pattern_id)
            if pattern is None:
                raise PatternNotFound(payload.pattern_id)
            result = await self._processor.infer(pattern, payload.image_url, payload.extras)
        except Exception as exc:
            latency_ms = int((time.monotonic() - started) * 1000)
            return await self._fail(message, job, str(exc) or exc.__class__.__name__, latency_ms)
        return await self._succeed(message, job, result.manifest, result.latency_ms)

    async def _succeed(self, message: QueueMessage, job: Job, manifest: dict[str, Any], latency_ms: int) -> Outcome:
        try:
            updated = await asyncio.to_thread(self._store.complete_job, job.id, manifest, latency_ms)
        except StoreWriteFailure as exc:
            log_event(LOGGER, "job.write_failed", level=logging.ERROR, job_id=job.id, error=str(exc))
            await self._archive(message)
            return "failed"
        if updated is None:
            await self._settle_duplicate(message, await asyncio.to_thread(self._store.get_job, job.id))
            return "duplicate"

        log_event(LOGGER, "job.succeeded", job_id=job.id, latency_ms=latency_ms, msg_id=message.msg_id)
        await self._acknowledge(message)
        await self._dispatcher.notify(
            job.user_id,
            "job.succeeded",
            job.id,
            job.pattern_id,
            manifest,
            None,
            extras=job.extras,
        )
        return "succeeded"

    async def _fail(self, message: QueueMessage, job: Job, error: str, latency_ms: int) -> Outcome:
        try:
            updated = await asyncio.to_thread(self._store.fail_job, job.id, error, latency_ms)
        except StoreWriteFailure as exc:
            log_event(LOGGER, "job.write_failed", level=logging.ERROR, job_id=job.id, error=str(exc))
            await self._archive(message)
            return "failed"
        if updated is None:
            await self._settle_duplicate(message, await asyncio.to_thread(self._store.get_job, job.id))
            return "duplicate"

        log_event(
            LOGGER,
            "job.failed",
            level=logging.WARNING,
            job_id=job.id,
            error=error,
            latency_ms=latency_ms,
            msg_id=message.msg_id,
        )
        await self._archive(message)
        await self._dispatcher.notify(
            job.user_id,
            "job.failed",
            job.id,
            job.pattern_id,
            None,
            error,
            extras=job.extras,
        )
        return "failed"

    async def _settle_duplicate(self, message: QueueMessage, job: Job) -> None:
        """Clear a redelivered message whose job already reached a terminal state."""

        log_event(
            LOGGER,
            "job.duplicate_delivery",
            job_id=job.id,
            status=job.status,
            msg_id=message.msg_id,
            read_ct=message.read_ct,
        )
        if job.status == "succeeded":
            await self._acknowledge(message)
        else:
            await self._archive(message)

    async def _acknowledge(self, message: QueueMessage) -> None:
        try:
            await self._queue.acknowledge(message.msg_id)
        except QueueUnavailable as exc:
            LOGGER.error(
                "acknowledge failed, message will be redelivered",
                extra={"msg_id": message.msg_id, "error": str(exc)},
            )

    async def _archive(self, message: QueueMessage) -> None:
        try:
            await self._queue.dead_letter(message.msg_id)
        except QueueUnavailable as exc:
            LOGGER.error(
                "archive failed, message will be redelivered",
                extra={"msg_id": message.msg_id, "error": str(exc)},
            )
            return
        log_event(LOGGER, "message.archived", msg_id=message.msg_id, job_id=message.message.job_id)
