"""Entrypoint for the API service."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI

from app.error_handlers import install_error_handlers
from app.logging import configure_logging
from app.settings import Settings, get_settings
from jobs.queue import RedisQueue
from jobs.service import JobStore

from .routes import router

LOGGER = logging.getLogger("imggo.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    configure_logging(settings.log_level, settings.log_json, settings.log_dir)
    LOGGER.info("starting api service", extra={"service": settings.service_name})
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    try:
        app.state.queue = RedisQueue(client, settings.queue_name)
        app.state.store = JobStore(settings.get_db_url())
        yield
    finally:
        await client.aclose()
        LOGGER.info("stopped api service", extra={"service": settings.service_name})


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    application = FastAPI(title="ImgGo Jobs API", lifespan=lifespan)
    application.state.settings = settings
    install_error_handlers(application)
    application.include_router(router, prefix=settings.api_prefix)
    return application


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "deploy.api.app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
