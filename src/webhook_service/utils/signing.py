"""HMAC-SHA256 signing for outbound and inbound webhooks."""

from __future__ import annotations

import hashlib
import hmac
import secrets

SECRET_PREFIX = "whsec_"


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(payload: bytes | str, secret: bytes | str) -> str:
    """Hex-encoded HMAC-SHA256 of *payload* keyed by *secret*."""
    return hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()


def verify(payload: bytes | str, signature: str, secret: bytes | str) -> bool:
    """Constant-time check that *signature* matches ``sign(payload, secret)``.

    An empty secret never verifies.
    """
    if not secret or not signature:
        return False
    expected = sign(payload, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def generate_secret() -> str:
    """New endpoint signing secret: ``whsec_`` followed by 64 hex chars."""
    return SECRET_PREFIX + secrets.token_hex(32)
