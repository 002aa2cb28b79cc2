"""Client-side JWT expiry checks.

Payloads are decoded without verifying the signature; only use the result
to decide when to send the user back to the login page.
"""

import logging
import time
from typing import Optional

import jwt

logger = logging.getLogger(__name__)

CLOCK_SKEW_SECONDS = 30


def decode_payload(token: str) -> Optional[dict]:
    if (token or "").count(".") != 2:
        return None
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.DecodeError as e:
        logger.warning("Failed to decode JWT", extra={"error": str(e)})
        return None


def is_expired(token: str, now: Optional[float] = None) -> bool:
    payload = decode_payload(token)
    if not payload or not payload.get("exp"):
        return True
    now = time.time() if now is None else now
    return now >= payload["exp"] - CLOCK_SKEW_SECONDS


def seconds_until_expiry(token: str, now: Optional[float] = None) -> int:
    payload = decode_payload(token)
    if not payload or not payload.get("exp"):
        return 0
    now = time.time() if now is None else now
    return max(0, int(payload["exp"] - now))
