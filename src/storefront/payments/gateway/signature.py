"""Webhook signatures: hex HMAC-SHA256 of the raw request body."""

import hashlib
import hmac


def compute_signature(payload: bytes | str, secret: str) -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes | str, signature: str | None, secret: str) -> bool:
    """Constant-time comparison of ``signature`` against the expected digest."""
    if not signature or not secret:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(expected, signature.strip())
