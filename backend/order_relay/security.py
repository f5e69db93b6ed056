"""Security utilities for webhook verification and PII hashing.

WHAT:
    - HMAC verification of Shopify webhook bodies
    - SHA-256 hashing of customer identifiers before they leave the service

WHY:
    - Unverified webhooks would let anyone report fake purchases.
    - TikTok matches users on hashed email/phone; raw PII is never sent.

REFERENCES:
    - https://shopify.dev/docs/apps/build/webhooks/subscribe/https#step-5-verify-the-webhook
    - https://business-api.tiktok.com/portal/docs?id=1771101027431425
"""

import base64
import hashlib
import hmac
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

SHOPIFY_HMAC_HEADER = "X-Shopify-Hmac-Sha256"


def compute_shopify_hmac(raw_body: bytes, secret: str) -> str:
    """Return the base64 HMAC-SHA256 digest Shopify sends for this body."""
    return base64.b64encode(
        hmac.new(
            secret.encode("utf-8"),
            raw_body,
            hashlib.sha256,
        ).digest()
    ).decode("utf-8")


def verify_shopify_webhook(raw_body: bytes, hmac_header: Optional[str], secret: Optional[str]) -> bool:
    """Verify that webhook request came from Shopify using HMAC.

    WHAT: Validates webhook signature using shared secret
    WHY: Prevent unauthorized webhook calls from malicious actors

    Must be called with the raw request bytes, before any JSON parsing:
    re-serialized JSON does not hash to the same digest.

    Args:
        raw_body: Raw request body bytes
        hmac_header: X-Shopify-Hmac-Sha256 header value
        secret: Shared webhook secret

    Returns:
        True if signature is valid, False otherwise (never raises)
    """
    if not secret:
        logger.error("[SHOPIFY_WEBHOOK] Webhook secret not configured")
        return False

    if not hmac_header:
        logger.warning("[SHOPIFY_WEBHOOK] Missing HMAC header")
        return False

    computed_hmac = compute_shopify_hmac(raw_body, secret)

    # Constant-time comparison to prevent timing attacks
    try:
        is_valid = hmac.compare_digest(
            computed_hmac.encode("utf-8"),
            hmac_header.encode("utf-8"),
        )
    except (TypeError, ValueError, UnicodeError) as e:
        logger.warning(f"[SHOPIFY_WEBHOOK] HMAC comparison failed: {e}")
        return False

    if not is_valid:
        logger.warning("[SHOPIFY_WEBHOOK] Invalid HMAC signature")

    return is_valid


def sha256_lower(value: Any) -> Optional[str]:
    """Hash a PII value the way TikTok expects.

    Trims whitespace and lowercases before hashing, so " Foo@Bar.COM "
    and "foo@bar.com" produce the same digest.

    Returns:
        Lowercase hex digest, or None for None/empty input.
    """
    if value is None:
        return None

    normalized = str(value).strip().lower()
    if not normalized:
        return None

    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
