"""HMAC signing and verification for webhook deliveries."""

from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from typing import Any

SIGNATURE_HEADER = "X-ImgGo-Signature"
SIGNATURE_PREFIX = "sha256="


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """Return the exact bytes that are signed and sent on the wire."""

    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Check a received signature in constant time.

    Signatures of a different length are rejected before any byte comparison.
    """

    expected = sign_payload(body, secret).encode("utf-8")
    provided = signature.encode("utf-8")
    if len(expected) != len(provided):
        return False
    return hmac.compare_digest(expected, provided)


def generate_secret(length: int = 32) -> str:
    return secrets.token_hex(length)
