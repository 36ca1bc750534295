"""
HMAC verification of inbound provider webhooks.

The signature is computed over the raw request body exactly as received.
Re-serializing a parsed payload would change key order and whitespace, so
callers must pass the original bytes.
"""

import hashlib
import hmac
import logging
from typing import Optional, Union

from call_assistant.config.constants import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def compute_signature(raw_payload: bytes, shared_secret: str) -> str:
    """Return the hex HMAC-SHA256 of ``raw_payload`` keyed with ``shared_secret``."""
    return hmac.new(shared_secret.encode("utf-8"), raw_payload, hashlib.sha256).hexdigest()


def verify(
    raw_payload: Union[bytes, str],
    provided_signature_hex: Optional[str],
    shared_secret: Optional[str],
) -> bool:
    """
    Check a webhook signature.

    Args:
        raw_payload: Request body bytes as received on the wire
        provided_signature_hex: Value of the signature header, if any
        shared_secret: Webhook secret shared with the provider

    Returns:
        True only when the signature matches. Never raises.
    """
    if not provided_signature_hex or not shared_secret:
        logger.debug("Signature verification failed: missing signature or secret")
        return False

    if isinstance(raw_payload, str):
        raw_payload = raw_payload.encode("utf-8")

    expected = compute_signature(raw_payload, shared_secret)
    # Provider hex may be upper-case
    provided = provided_signature_hex.strip().lower()
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8", "replace"))
