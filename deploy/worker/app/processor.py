"""Pattern-driven manifest extraction through the vision model."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any

from app.settings import Settings, get_settings
from jobs.schemas import Pattern
from llm.async_client import AsyncLLMClient
from llm.parsers import extract_content, parse_manifest
from manifest.ordering import build_output_schema

LOGGER = logging.getLogger("imggo.worker.processor")

SYSTEM_PROMPT = """
You are an expert image analysis AI that extracts structured data from images.
Analyze the image carefully and extract information according to the user's instructions.

IMPORTANT:
- Be precise and accurate
- If information is not visible or uncertain, use null or indicate uncertainty
- Follow the schema structure exactly
- Extract all requested information
""".strip()

USER_PROMPT_TRAILER = (
    "Analyze this image and extract the information in the exact structure specified."
)


@dataclass(slots=True)
class InferenceResult:
    manifest: dict[str, Any]
    latency_ms: int


class ManifestProcessor:
    """Turns one image plus one pattern into a schema-conforming manifest."""

    def __init__(
        self, settings: Settings | None = None, client: AsyncLLMClient | None = None
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client or AsyncLLMClient(
            endpoint=self._settings.llm_endpoint,
            model=self._settings.llm_model,
            api_key=self._settings.llm_api_key,
            timeout=self._settings.llm_timeout_seconds,
            max_attempts=self._settings.llm_max_attempts,
        )

    def build_prompt(self, pattern: Pattern, extras: dict[str, Any] | None = None) -> str:
        parts = [pattern.instructions.strip(), USER_PROMPT_TRAILER]
        if extras:
            parts.append(f"Additional context: {json.dumps(extras, ensure_ascii=False)}")
        return "\n\n".join(parts)

    async def infer(
        self, pattern: Pattern, image_url: str, extras: dict[str, Any] | None = None
    ) -> InferenceResult:
        schema = build_output_schema(pattern.json_schema)
        started = time.monotonic()
        response = await self._client.chat_with_vision(
            self.build_prompt(pattern, extras),
            [image_url],
            system_prompt=SYSTEM_PROMPT,
            detail=self._settings.llm_image_detail,
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "image_analysis",
                    "strict": True,
                    "schema": schema,
                },
            },
            temperature=self._settings.llm_temperature,
            max_tokens=self._settings.llm_max_tokens,
        )
        manifest = parse_manifest(extract_content(response), schema)
        latency_ms = int((time.monotonic() - started) * 1000)
        LOGGER.debug(
            "manifest inferred",
            extra={"pattern_id": pattern.id, "latency_ms": latency_ms, "model": response.get("model")},
        )
        return InferenceResult(manifest=manifest, latency_ms=latency_ms)
