"""
Relay Exceptions
================

Error taxonomy for the Shopify -> TikTok purchase relay.

WHY THIS FILE EXISTS
--------------------
Every failure in the webhook pipeline maps to exactly one HTTP outcome:
- ConfigurationError: fatal at startup, the app never serves traffic
- WebhookAuthenticationError: signature mismatch -> 401
- MalformedOrderError: body is not a usable order -> 500
- UpstreamError: outbound call failed for any reason -> 500
- OrderSkipped: intentionally not forwarded -> 200 (not an error)

RELATED FILES
-------------
- order_relay/config.py: Raises ConfigurationError
- order_relay/services/order_mapping.py: Raises MalformedOrderError, OrderSkipped
- order_relay/services/tiktok_events_service.py: UpstreamError subclasses
- order_relay/routers/shopify_webhooks.py: Converts all of these to responses
"""

from typing import Optional, Sequence


class RelayError(Exception):
    """
    Base exception for all relay errors.

    USAGE:
        try:
            await process(order)
        except RelayError as e:
            logger.error(e.message)
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(RelayError):
    """
    Required configuration is missing or invalid.

    ATTRIBUTES:
        missing: Names of the environment variables that were unset or invalid
    """

    def __init__(self, missing: Sequence[str], message: Optional[str] = None):
        self.missing = list(missing)
        if message is None:
            message = (
                "Missing required environment variable(s): "
                + ", ".join(self.missing)
            )
        super().__init__(message)


class WebhookAuthenticationError(RelayError):
    """Webhook signature is missing or does not match the raw body."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message)


class MalformedOrderError(RelayError):
    """Request body could not be turned into a valid order or event."""


class UpstreamError(RelayError):
    """
    Outbound call to the advertising platform failed.

    WHAT:
        Parent class for network failures, timeouts, non-2xx responses and
        application-level error codes.

    WHY:
        The webhook endpoint treats every one of them as "send failed" while
        logs keep the concrete subclass.
    """


class OrderSkipped(RelayError):
    """
    Order intentionally not forwarded (test, cancelled or refunded).

    Not a failure: the endpoint answers 200 so the storefront does not retry.

    ATTRIBUTES:
        reason: Short machine-readable reason (e.g. "test_order")
    """

    def __init__(self, reason: str, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Order skipped: {reason}")
