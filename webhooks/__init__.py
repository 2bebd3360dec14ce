"""Signed job-outcome notifications."""

from .signing import SIGNATURE_HEADER, sign_payload, verify_signature

__all__ = ["SIGNATURE_HEADER", "sign_payload", "verify_signature"]
