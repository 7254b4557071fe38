"""
Webhook Security Module

Signature verification for payment provider webhooks (Standard Webhooks):
- Constant-time signature comparison
- Timestamp validation against replays
- Raw body verification before any JSON parsing
"""

import base64
import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""

    pass


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def extract_signing_key(secret: str) -> bytes:
    """
    Signing key bytes from a "whsec_BASE64KEY" secret.

    The HMAC key is the base64-decoded part after "whsec_"; secrets without the
    prefix are decoded whole, and used as raw UTF-8 if they are not base64.
    """
    encoded = secret[6:] if secret.startswith("whsec_") else secret
    try:
        return base64.b64decode(encoded, validate=True)
    except ValueError:
        return secret.encode("utf-8")


def compute_signature(secret: str, webhook_id: str, timestamp: str, payload: bytes) -> str:
    """base64(HMAC-SHA256(key, "{id}.{timestamp}.{payload}"))"""
    signed_message = b".".join([webhook_id.encode("utf-8"), timestamp.encode("utf-8"), payload])
    digest = hmac.new(extract_signing_key(secret), signed_message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_timestamp(
    timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS, now: Optional[int] = None
) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds
        now: Current unix time (defaults to time.time())

    Returns:
        True if timestamp is valid, False otherwise
    """
    if not timestamp:
        return False

    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False

    current_time = int(now if now is not None else time.time())
    age = abs(current_time - webhook_time)
    if age > max_age:
        logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def verify_standard_webhook(
    secret: str,
    webhook_id: str,
    timestamp: str,
    signature_header: str,
    payload: bytes,
    now: Optional[int] = None,
) -> None:
    """Raise WebhookSignatureError unless one of the v1 signatures matches"""
    if not webhook_id:
        raise WebhookSignatureError("Missing webhook id")
    if not signature_header:
        raise WebhookSignatureError("Missing webhook signature")
    if not timestamp:
        raise WebhookSignatureError("Missing webhook timestamp")
    if not verify_timestamp(timestamp, now=now):
        raise WebhookSignatureError("Webhook timestamp expired")

    expected = compute_signature(secret, webhook_id, timestamp, payload)

    # Header may carry several space-separated "v1,<sig>" entries (key rotation)
    for candidate in signature_header.split():
        version, _, signature = candidate.partition(",")
        if version != "v1":
            continue
        if constant_time_compare(expected, signature):
            return

    raise WebhookSignatureError("Invalid webhook signature")


async def verify_dodo_webhook(request: Request, secret: str) -> bytes:
    """
    Verify a Dodo Payments webhook and return the raw body.

    Headers:
      - 'webhook-id': unique event id
      - 'webhook-timestamp': unix timestamp (seconds)
      - 'webhook-signature': 'v1,{base64(hmac_sha256(id.timestamp.payload))}'
    """
    # Raw body BEFORE any parsing
    raw_body = await request.body()
    webhook_id = request.headers.get("webhook-id", "")

    try:
        verify_standard_webhook(
            secret,
            webhook_id,
            request.headers.get("webhook-timestamp", ""),
            request.headers.get("webhook-signature", ""),
            raw_body,
        )
    except WebhookSignatureError as e:
        logger.error(f"❌ Webhook verification failed for {webhook_id or 'unknown'}: {e}")
        raise HTTPException(status_code=401, detail=str(e)) from e

    logger.info(f"✅ Dodo webhook signature verified successfully: {webhook_id}")
    return raw_body
