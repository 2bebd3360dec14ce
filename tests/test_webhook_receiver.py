from __future__ import annotations

import httpx
import pytest

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient

from jobs.schemas import WebhookCreate
from webhooks import SIGNATURE_HEADER, sign_payload
from webhooks.dispatcher import WebhookDispatcher
from webhooks.receiver import create_receiver_app
from webhooks.signing import serialize_payload


def test_receiver_accepts_valid_signature() -> None:
    app = create_receiver_app("secret")
    body = serialize_payload({"event": "job.succeeded", "job_id": "j1"})

    with TestClient(app) as client:
        response = client.post(
            "/webhook",
            content=body,
            headers={SIGNATURE_HEADER: sign_payload(body, "secret"), "Content-Type": "application/json"},
        )

    assert response.status_code == 204
    assert app.state.events == [{"event": "job.succeeded", "job_id": "j1"}]


def test_receiver_rejects_bad_or_missing_signature() -> None:
    app = create_receiver_app("secret")
    body = serialize_payload({"event": "job.failed"})

    with TestClient(app) as client:
        wrong = client.post("/webhook", content=body, headers={SIGNATURE_HEADER: sign_payload(body, "other")})
        missing = client.post("/webhook", content=body)

    assert wrong.status_code == 401
    assert missing.status_code == 401
    assert app.state.events == []


@pytest.mark.asyncio
async def test_dispatcher_delivers_to_reference_receiver(store) -> None:
    receiver = create_receiver_app("shared-secret")
    store.create_webhook(
        WebhookCreate(user_id="user-1", url="http://receiver/webhook", secret="shared-secret")
    )
    dispatcher = WebhookDispatcher(
        store,
        client_factory=lambda: httpx.AsyncClient(transport=httpx.ASGITransport(app=receiver)),
    )

    results = await dispatcher.notify("user-1", "job.succeeded", "job-9", "p", {"a": "y"}, None)

    assert [result.delivered for result in results] == [True]
    assert results[0].status_code == 204
    assert receiver.state.events[0]["job_id"] == "job-9"
    assert receiver.state.events[0]["manifest"] == {"a": "y"}
