"""
Webhook signature scheme.

Header format: ``t=<unixSeconds>,v1=<hexHmacSha256>`` where the HMAC is taken
over ``"{timestamp}.{payload}"`` with the shared webhook secret.
"""

import hashlib
import hmac
import time
from typing import Optional

from ticketing.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300


def compute_signature(secret: str, payload: str, timestamp: int) -> str:
    signed_payload = f"{timestamp}.{payload}"
    return hmac.new(secret.encode(), signed_payload.encode(), hashlib.sha256).hexdigest()


def sign_payload(secret: str, payload: str, timestamp: Optional[int] = None) -> str:
    """Build the signature header value for a raw payload."""
    if timestamp is None:
        timestamp = int(time.time())
    return f"t={timestamp},v1={compute_signature(secret, payload, timestamp)}"


def parse_signature_header(header: str) -> Optional[tuple[int, str]]:
    timestamp = None
    signature = None
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None
        elif key == "v1":
            signature = value
    if timestamp is None or not signature:
        return None
    return timestamp, signature


def verify_signature(
    secret: str,
    payload: str,
    header: Optional[str],
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[int] = None,
) -> bool:
    """
    Check a signature header against the payload.

    Rejects a missing or malformed header, a timestamp outside the tolerance
    window in either direction (replay protection) and any digest mismatch.
    The digest comparison is constant-time.
    """
    if not header:
        logger.warning("webhook_signature_missing")
        return False

    parsed = parse_signature_header(header)
    if parsed is None:
        logger.warning("webhook_signature_malformed")
        return False
    timestamp, received = parsed

    current = int(time.time()) if now is None else now
    if abs(current - timestamp) > tolerance:
        logger.warning("webhook_signature_stale", age_seconds=current - timestamp)
        return False

    expected = compute_signature(secret, payload, timestamp)
    if not hmac.compare_digest(received.encode(), expected.encode()):
        logger.warning("webhook_signature_mismatch")
        return False
    return True
