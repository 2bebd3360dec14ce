"""Reference webhook receiver that verifies delivery signatures."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request, status

from .signing import SIGNATURE_HEADER, verify_signature

LOGGER = logging.getLogger("imggo.webhooks.receiver")


def create_receiver_app(secret: str, path: str = "/webhook") -> FastAPI:
    """Return an app that accepts signed job events and keeps them in ``state.events``."""

    application = FastAPI(title="ImgGo webhook receiver")
    application.state.events = []

    @application.post(path, status_code=status.HTTP_204_NO_CONTENT)
    async def receive(
        request: Request,
        signature: str | None = Header(default=None, alias=SIGNATURE_HEADER),
    ) -> None:
        body = await request.body()
        if not signature or not verify_signature(body, signature, secret):
            LOGGER.warning("rejected webhook with invalid signature")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid signature")
        event: dict[str, Any] = json.loads(body)
        LOGGER.info(
            "accepted webhook",
            extra={"event": event.get("event"), "job_id": event.get("job_id")},
        )
        application.state.events.append(event)

    return application


__all__ = ["create_receiver_app"]
