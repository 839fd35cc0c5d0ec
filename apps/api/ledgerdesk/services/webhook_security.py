"""HMAC signature checks for inbound webhooks."""
from __future__ import annotations

import hashlib
import hmac
import logging

from ..core.config import settings

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-webhook-signature"
_PREFIXES = ("sha256=",)


def verify_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """Return True when ``signature`` is the hex HMAC-SHA256 of ``raw_body`` under ``secret``."""

    if not signature or not secret:
        return False

    provided = signature.strip()
    for prefix in _PREFIXES:
        if provided.lower().startswith(prefix):
            provided = provided[len(prefix):]
            break

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest().encode("ascii")
    return hmac.compare_digest(expected, provided.lower().encode("utf-8", "replace"))


def is_request_authorized(raw_body: bytes, signature: str | None) -> bool:
    """Apply the configured signing policy to an inbound request.

    Unsigned requests are accepted only when no secret is configured and the app is
    not running in production.
    """

    secret = settings.goto_webhook_secret
    if secret:
        return verify_signature(raw_body, signature, secret)

    if settings.is_production:
        logger.error("GOTO_WEBHOOK_SECRET is not configured; rejecting unsigned webhook in production")
        return False

    logger.warning("GOTO_WEBHOOK_SECRET is not configured; skipping signature verification")
    return True
