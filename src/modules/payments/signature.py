"""HMAC-SHA256 webhook signatures."""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional

from django.conf import settings


def compute_signature(body: bytes, secret: Optional[str] = None) -> str:
    key = (secret if secret is not None else settings.PAYMENT_WEBHOOK_SECRET).encode()
    return hmac.new(key, body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str]) -> bool:
    """Constant-time check of *signature* against the raw request body.

    An unset ``PAYMENT_WEBHOOK_SECRET`` rejects every delivery.
    """
    if not signature or not settings.PAYMENT_WEBHOOK_SECRET:
        return False
    return hmac.compare_digest(compute_signature(body), signature.strip().lower())
