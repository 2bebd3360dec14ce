"""Module entrypoint for running the worker and its operator commands."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

import redis.asyncio as aioredis

from app.logging import configure_logging
from app.settings import Settings, get_settings
from jobs.queue import RedisQueue
from jobs.schemas import QueuePayload
from jobs.service import JobStore

from .worker import Worker


def build_queue(settings: Settings) -> tuple[aioredis.Redis, RedisQueue]:
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    return client, RedisQueue(client, settings.queue_name)


async def run(settings: Settings, *, once: bool = False) -> int:
    client, queue = build_queue(settings)
    worker = Worker(queue, JobStore(settings.get_db_url()), settings=settings)
    try:
        if once:
            summary = await worker.run_once()
            print(json.dumps({"leased": summary.leased, "outcomes": summary.outcomes}))
        else:
            await worker.run_forever()
    finally:
        await client.aclose()
    return 0


async def show_metrics(settings: Settings) -> int:
    client, queue = build_queue(settings)
    try:
        metrics = await queue.metrics()
    finally:
        await client.aclose()
    print(metrics.model_dump_json(indent=2))
    return 0


async def requeue(settings: Settings, msg_id: int) -> int:
    """Return an archived message to the queue unless its job already finished."""

    client, queue = build_queue(settings)
    store = JobStore(settings.get_db_url())
    try:
        payload = await queue.get_archived(msg_id)
        if payload is None:
            print(f"message {msg_id} is not archived", file=sys.stderr)
            return 1
        job = store.find_job(payload.job_id)
        if job is not None and job.is_terminal:
            print(f"job {job.id} is already {job.status}; not requeued", file=sys.stderr)
            return 1
        await queue.requeue_archived(msg_id)
    finally:
        await client.aclose()
    print(f"message {msg_id} requeued (job {payload.job_id})")
    return 0


async def enqueue_pending(settings: Settings) -> int:
    client, queue = build_queue(settings)
    store = JobStore(settings.get_db_url())
    count = 0
    try:
        for job in store.list_jobs_by_status("queued"):
            await queue.enqueue(
                QueuePayload(
                    job_id=job.id,
                    pattern_id=job.pattern_id,
                    image_url=job.image_url,
                    extras=job.extras,
                )
            )
            count += 1
    finally:
        await client.aclose()
    print(f"{count} queued jobs enqueued")
    return 0


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ImgGo job worker")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("run", help="Process jobs until interrupted (default)")
    commands.add_parser("once", help="Lease and process a single batch")
    commands.add_parser("metrics", help="Print queue metrics as JSON")
    requeue_parser = commands.add_parser("requeue", help="Requeue an archived message")
    requeue_parser.add_argument("msg_id", type=int)
    commands.add_parser("enqueue-pending", help="Enqueue every job still in the queued state")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json, settings.log_dir)

    command = args.command or "run"
    if command == "metrics":
        return asyncio.run(show_metrics(settings))
    if command == "requeue":
        return asyncio.run(requeue(settings, args.msg_id))
    if command == "enqueue-pending":
        return asyncio.run(enqueue_pending(settings))
    try:
        return asyncio.run(run(settings, once=command == "once"))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
