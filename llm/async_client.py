"""Async client for OpenAI-compatible vision models with structured output."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.errors import InferenceFailure

logger = logging.getLogger("imggo.llm")

COMPLETIONS_PATH = "/v1/chat/completions"


class AsyncLLMClient:
    """Chat completion calls for the extraction worker.

    Timeouts and connection errors are retried up to ``max_attempts`` times in
    total; every other failure surfaces at once as :class:`InferenceFailure`.
    """

    def __init__(
        self,
        endpoint: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 120,
        max_attempts: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def chat(self, messages: list[dict[str, Any]], **params: Any) -> dict[str, Any]:
        """POST ``messages`` plus any extra request ``params`` and return the decoded body."""

        body = {"model": self.model, "messages": messages, **params}
        logger.info(
            "inference request",
            extra={"endpoint": self.endpoint, "model": self.model, "message_count": len(messages)},
        )
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._post(body)
        except httpx.TimeoutException as exc:
            logger.error("inference timed out", extra={"timeout": self.timeout})
            raise InferenceFailure(f"LLM API request timed out after {self.timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            logger.error("inference rejected", extra={"status_code": code})
            raise InferenceFailure(f"LLM API returned error: {code}") from exc
        except httpx.HTTPError as exc:
            logger.error("inference transport error", extra={"error": str(exc)})
            raise InferenceFailure("Network error connecting to LLM API") from exc
        except ValueError as exc:
            logger.error("inference response undecodable", extra={"error": str(exc)})
            raise InferenceFailure("LLM API returned a non-JSON response") from exc

        logger.info("inference response", extra={"model": result.get("model")})
        return result

    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(
                f"{self.endpoint}{COMPLETIONS_PATH}", json=body, headers=self._headers()
            )
            response.raise_for_status()
            return response.json()

    async def chat_with_vision(
        self,
        text: str,
        images: list[str],
        system_prompt: str | None = None,
        detail: str | None = None,
        **params: Any,
    ) -> dict[str, Any]:
        """Send one user turn made of ``text`` followed by each image reference.

        ``images`` may hold URLs or base64 data URIs; ``detail`` is passed as the
        provider's image resolution hint.
        """

        parts: list[dict[str, Any]] = [{"type": "text", "text": text}]
        for url in images:
            image: dict[str, Any] = {"url": url}
            if detail:
                image["detail"] = detail
            parts.append({"type": "image_url", "image_url": image})

        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": parts})
        return await self.chat(messages, **params)
