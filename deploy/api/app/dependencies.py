"""Common FastAPI dependency helpers."""

from fastapi import Header, HTTPException, Request

from jobs.queue import RedisQueue
from jobs.service import JobStore


def get_queue(request: Request) -> RedisQueue:
    queue = getattr(request.app.state, "queue", None)
    if queue is None:
        raise RuntimeError("queue not initialized")
    return queue


def get_store(request: Request) -> JobStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("job store not initialized")
    return store


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Requester identity, resolved by the authenticating proxy in front of this service."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="missing X-User-Id header")
    return x_user_id
