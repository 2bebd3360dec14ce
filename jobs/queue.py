"""Redis-backed queue transport with per-message visibility leases."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis
import redis.asyncio as aioredis

from app.errors import QueueUnavailable

from .schemas import QueueMessage, QueueMetrics, QueuePayload

LOGGER = logging.getLogger("imggo.queue")


def _to_datetime(epoch: float) -> datetime:
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


class RedisQueue:
    """At-least-once queue with visibility leases.

    Layout under ``queue_name``:

    * ``:seq``       message id counter
    * ``:messages``  hash msg_id -> JSON envelope
    * ``:vt``        sorted set msg_id -> visibility deadline (epoch seconds)
    * ``:read_ct``   hash msg_id -> delivery attempts
    * ``:archive``   hash msg_id -> JSON envelope of dead-lettered messages
    * ``:lease:<msg_id>:<deadline>`` claim marker, one per visibility window

    A message is leasable while its deadline is in the past. Leasing claims the
    current window with ``SET NX`` so concurrent workers never receive the same
    message for the same window, then pushes the deadline forward.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        queue_name: str = "ingest_jobs",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._name = queue_name
        self._clock = clock

    @property
    def queue_name(self) -> str:
        return self._name

    def _key(self, suffix: str) -> str:
        return f"{self._name}:{suffix}"

    @asynccontextmanager
    async def _transport(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except redis.RedisError as exc:
            LOGGER.error("queue operation failed", extra={"operation": operation, "error": str(exc)})
            raise QueueUnavailable(f"queue {operation} failed: {exc}") from exc

    async def enqueue(self, payload: QueuePayload) -> int:
        now = self._clock()
        async with self._transport("enqueue"):
            msg_id = int(await self._client.incr(self._key("seq")))
            envelope = {"enqueued_at": now, "message": payload.model_dump(mode="json")}
            await self._client.hset(self._key("messages"), str(msg_id), json.dumps(envelope))
            await self._client.zadd(self._key("vt"), {str(msg_id): now})
        LOGGER.info("message enqueued", extra={"msg_id": msg_id, "job_id": payload.job_id})
        return msg_id

    async def lease(self, visibility_seconds: int, max_batch: int) -> list[QueueMessage]:
        """Lease up to ``max_batch`` visible messages; never blocks on an empty queue."""

        now = self._clock()
        leased: list[QueueMessage] = []
        async with self._transport("lease"):
            candidates = await self._client.zrangebyscore(
                self._key("vt"), "-inf", now, start=0, num=max_batch * 2, withscores=True
            )
            for raw_id, deadline in candidates:
                if len(leased) >= max_batch:
                    break
                msg_id = str(raw_id)
                claimed = await self._client.set(
                    self._key(f"lease:{msg_id}:{deadline!r}"),
                    "1",
                    nx=True,
                    ex=max(1, int(visibility_seconds)),
                )
                if not claimed:
                    continue
                envelope = await self._client.hget(self._key("messages"), msg_id)
                if envelope is None:
                    # acknowledged or archived while a lease was being taken
                    await self._client.zrem(self._key("vt"), msg_id)
                    await self._client.hdel(self._key("read_ct"), msg_id)
                    continue
                vt = now + visibility_seconds
                await self._client.zadd(self._key("vt"), {msg_id: vt})
                read_ct = int(await self._client.hincrby(self._key("read_ct"), msg_id, 1))
                data = json.loads(envelope)
                leased.append(
                    QueueMessage(
                        msg_id=int(msg_id),
                        read_ct=read_ct,
                        enqueued_at=_to_datetime(float(data["enqueued_at"])),
                        vt=_to_datetime(vt),
                        message=QueuePayload.model_validate(data["message"]),
                    )
                )
        return leased

    async def acknowledge(self, msg_id: int) -> bool:
        """Permanently delete a processed message."""

        key = str(msg_id)
        async with self._transport("acknowledge"):
            removed = await self._client.hdel(self._key("messages"), key)
            await self._client.zrem(self._key("vt"), key)
            await self._client.hdel(self._key("read_ct"), key)
        return bool(removed)

    async def dead_letter(self, msg_id: int) -> bool:
        """Move a message to the archive for manual inspection."""

        key = str(msg_id)
        async with self._transport("archive"):
            envelope = await self._client.hget(self._key("messages"), key)
            if envelope is None:
                return False
            data = json.loads(envelope)
            data["archived_at"] = self._clock()
            data["read_ct"] = int(await self._client.hget(self._key("read_ct"), key) or 0)
            await self._client.hset(self._key("archive"), key, json.dumps(data))
            await self._client.hdel(self._key("messages"), key)
            await self._client.zrem(self._key("vt"), key)
            await self._client.hdel(self._key("read_ct"), key)
        LOGGER.info("message archived", extra={"msg_id": msg_id})
        return True

    async def get_archived(self, msg_id: int) -> QueuePayload | None:
        async with self._transport("archive read"):
            envelope = await self._client.hget(self._key("archive"), str(msg_id))
        if envelope is None:
            return None
        return QueuePayload.model_validate(json.loads(envelope)["message"])

    async def requeue_archived(self, msg_id: int) -> bool:
        """Make an archived message visible again with a fresh delivery count."""

        key = str(msg_id)
        async with self._transport("requeue"):
            envelope = await self._client.hget(self._key("archive"), key)
            if envelope is None:
                return False
            data = json.loads(envelope)
            restored = {"enqueued_at": data["enqueued_at"], "message": data["message"]}
            await self._client.hset(self._key("messages"), key, json.dumps(restored))
            await self._client.zadd(self._key("vt"), {key: self._clock()})
            await self._client.hdel(self._key("archive"), key)
        LOGGER.info("archived message requeued", extra={"msg_id": msg_id})
        return True

    async def metrics(self) -> QueueMetrics:
        now = self._clock()
        async with self._transport("metrics"):
            queue_length = int(await self._client.zcard(self._key("vt")))
            visible = int(await self._client.zcount(self._key("vt"), "-inf", now))
            archived = int(await self._client.hlen(self._key("archive")))
            ids = await self._client.hkeys(self._key("messages"))
            oldest_age: float | None = None
            if ids:
                envelope = await self._client.hget(self._key("messages"), str(min(int(i) for i in ids)))
                if envelope is not None:
                    oldest_age = max(0.0, now - float(json.loads(envelope)["enqueued_at"]))
        return QueueMetrics(
            queue_name=self._name,
            queue_length=queue_length,
            visible=visible,
            leased=queue_length - visible,
            archived=archived,
            oldest_msg_age_sec=oldest_age,
        )
