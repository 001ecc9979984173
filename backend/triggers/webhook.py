"""Webhook signature verification for inbound trigger events.

Callers sign the raw request body with HMAC-SHA256 and send it as
``X-Signature-256: sha256=<hexdigest>``. Verification is skipped when no
secret is configured.
"""

import hashlib
import hmac
from typing import Optional

SIGNATURE_HEADER = "X-Signature-256"


def sign_payload(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Check ``signature`` against the body; always true without a secret."""
    if not secret:
        return True
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature)
