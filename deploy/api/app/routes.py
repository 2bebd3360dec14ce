"""API route definitions."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse

from app.errors import NotFoundError, StoreWriteFailure
from app.settings import Settings, get_settings
from jobs.queue import RedisQueue
from jobs.schemas import JobCreate, ManifestFormat, QueueMetrics, QueuePayload
from jobs.service import JobStore
from manifest import render_manifest

from .dependencies import get_queue, get_store, get_user_id
from .schemas import HealthResponse, JobCreateRequest, JobCreateResponse, JobView

LOGGER = logging.getLogger("imggo.api")

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse, tags=["system"])
async def healthz(
    settings: Annotated[Settings, Depends(get_settings)]
) -> HealthResponse:
    """Simple health-check endpoint."""

    return HealthResponse(service=settings.service_name)


@router.post("/jobs", response_model=JobCreateResponse, status_code=202, tags=["jobs"])
async def submit_job(
    request: JobCreateRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    store: Annotated[JobStore, Depends(get_store)],
    queue: Annotated[RedisQueue, Depends(get_queue)],
) -> JobCreateResponse:
    """Insert a queued job and hand it to the workers."""

    pattern = await asyncio.to_thread(store.get_pattern, request.pattern_id)
    if pattern is None or pattern.user_id != user_id:
        raise HTTPException(status_code=404, detail=f"Pattern not found: {request.pattern_id}")

    if request.idempotency_key:
        existing = await asyncio.to_thread(
            store.find_job_by_idempotency_key, user_id, request.idempotency_key
        )
        if existing is not None:
            return JobCreateResponse(
                job_id=existing.id,
                status=existing.status,
                idempotent_replay=True,
                created_at=existing.created_at,
            )

    data = JobCreate(user_id=user_id, **request.model_dump())
    try:
        job = await asyncio.to_thread(store.create_job, data)
    except StoreWriteFailure:
        if not request.idempotency_key:
            raise
        # a concurrent submission with the same key won the insert
        existing = await asyncio.to_thread(
            store.find_job_by_idempotency_key, user_id, request.idempotency_key
        )
        if existing is None:
            raise
        return JobCreateResponse(
            job_id=existing.id,
            status=existing.status,
            idempotent_replay=True,
            created_at=existing.created_at,
        )

    await queue.enqueue(
        QueuePayload(
            job_id=job.id,
            pattern_id=job.pattern_id,
            image_url=job.image_url,
            extras=job.extras,
        )
    )
    LOGGER.info("job accepted", extra={"job_id": job.id, "pattern_id": job.pattern_id})
    return JobCreateResponse(job_id=job.id, status=job.status, created_at=job.created_at)


@router.get("/jobs/{job_id}", response_model=JobView, tags=["jobs"])
def job_status(
    job_id: str,
    user_id: Annotated[str, Depends(get_user_id)],
    store: Annotated[JobStore, Depends(get_store)],
    format: Annotated[Optional[ManifestFormat], Query()] = None,
) -> Response:
    job = store.get_job(job_id)
    if job.user_id != user_id:
        raise NotFoundError(f"Job not found: {job_id}")

    if job.status != "succeeded" or job.manifest is None:
        return JSONResponse(JobView.from_job(job).model_dump(mode="json"))

    pattern = store.get_pattern(job.pattern_id)
    if pattern is None:
        return JSONResponse(JobView.from_job(job, job.manifest).model_dump(mode="json"))

    rendered = render_manifest(job.manifest, pattern, format)
    if rendered.is_text:
        return Response(
            content=rendered.body,
            media_type=rendered.content_type,
            headers={
                "X-Job-Id": job.id,
                "X-Job-Status": job.status,
                "X-Pattern-Id": job.pattern_id,
            },
        )
    return JSONResponse(JobView.from_job(job, rendered.body).model_dump(mode="json"))


@router.get("/queue/metrics", response_model=QueueMetrics, tags=["system"])
async def queue_metrics(
    queue: Annotated[RedisQueue, Depends(get_queue)],
) -> QueueMetrics:
    return await queue.metrics()
