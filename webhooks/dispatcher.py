"""Fire-and-forget fan-out of job outcome events to subscriber endpoints."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from app.errors import WebhookDeliveryFailure
from jobs.schemas import Webhook, WebhookEvent
from jobs.service import JobStore, utc_now

from .signing import SIGNATURE_HEADER, serialize_payload, sign_payload

LOGGER = logging.getLogger("imggo.webhooks")


@dataclass(slots=True)
class DeliveryResult:
    webhook_id: str
    delivered: bool
    status_code: int | None = None
    error: str | None = None


class WebhookDispatcher:
    """Signs and posts job events to every matching active webhook.

    Each endpoint is delivered independently and concurrently. Failures are
    logged and reported in the returned results; nothing is retried and no
    exception escapes :meth:`notify`.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        timeout: float = 30.0,
        user_agent: str = "ImgGo-Webhook/1.0",
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._store = store
        self._timeout = timeout
        self._user_agent = user_agent
        self._client_factory = client_factory or (
            lambda: httpx.AsyncClient(timeout=self._timeout)
        )

    async def notify(
        self,
        user_id: str,
        event: WebhookEvent,
        job_id: str,
        pattern_id: str,
        manifest: dict[str, Any] | None,
        error: str | None,
        extras: dict[str, Any] | None = None,
    ) -> list[DeliveryResult]:
        try:
            webhooks = await asyncio.to_thread(self._store.list_active_webhooks, user_id, event)
        except Exception as exc:
            LOGGER.error(
                "webhook lookup failed",
                extra={"user_id": user_id, "event": event, "error": str(exc)},
            )
            return []

        if not webhooks:
            LOGGER.debug("no webhooks configured", extra={"user_id": user_id, "event": event})
            return []

        payload: dict[str, Any] = {
            "event": event,
            "job_id": job_id,
            "pattern_id": pattern_id,
            "manifest": manifest,
            "error": error,
            "timestamp": utc_now().isoformat(),
        }
        if extras:
            payload["extras"] = extras
        body = serialize_payload(payload)

        async with self._client_factory() as client:
            outcomes = await asyncio.gather(
                *(self._deliver(client, webhook, body, job_id) for webhook in webhooks),
                return_exceptions=True,
            )

        results: list[DeliveryResult] = []
        for webhook, outcome in zip(webhooks, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.error(
                    "webhook delivery crashed",
                    extra={"webhook_id": webhook.id, "job_id": job_id, "error": str(outcome)},
                )
                results.append(DeliveryResult(webhook.id, False, error=str(outcome)))
            else:
                results.append(outcome)
        return results

    async def _deliver(
        self, client: httpx.AsyncClient, webhook: Webhook, body: bytes, job_id: str
    ) -> DeliveryResult:
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_payload(body, webhook.secret),
            "User-Agent": self._user_agent,
        }
        try:
            response = await client.post(
                webhook.url, content=body, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            failure = WebhookDeliveryFailure(webhook.id, str(exc) or exc.__class__.__name__)
            return self._failed(failure, job_id)
        if not response.is_success:
            failure = WebhookDeliveryFailure(webhook.id, f"HTTP {response.status_code}")
            return self._failed(failure, job_id, response.status_code)

        LOGGER.info("webhook delivered", extra={"webhook_id": webhook.id, "job_id": job_id})
        try:
            await asyncio.to_thread(self._store.touch_webhook, webhook.id)
        except Exception as exc:
            LOGGER.error(
                "webhook bookkeeping failed",
                extra={"webhook_id": webhook.id, "error": str(exc)},
            )
        return DeliveryResult(webhook.id, True, status_code=response.status_code)

    @staticmethod
    def _failed(
        failure: WebhookDeliveryFailure, job_id: str, status_code: int | None = None
    ) -> DeliveryResult:
        LOGGER.warning(
            "webhook delivery failed",
            extra={"webhook_id": failure.webhook_id, "job_id": job_id, "error": failure.reason},
        )
        return DeliveryResult(failure.webhook_id, False, status_code=status_code, error=failure.reason)
