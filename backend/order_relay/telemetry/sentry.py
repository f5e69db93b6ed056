"""
Sentry Error Tracking
=====================

Centralized error tracking for the relay.

Related files:
- order_relay/main.py: Initializes Sentry when the app is created
- order_relay/routers/shopify_webhooks.py: Reports unexpected webhook failures

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled when unset)
- ENVIRONMENT: Environment name (production, development, local)
"""

from __future__ import annotations

import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(dsn: Optional[str], environment: str) -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Should be called once during application startup, before routes are served.

    Returns:
        True if Sentry was initialized, False when no DSN is configured or
        initialization failed.
    """
    global _initialized

    if not dsn:
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(
                    level=logging.INFO,         # Capture INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            # Customer emails/phones must never reach Sentry
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"[SENTRY] Failed to initialize: {e}")
        return False

    _initialized = True
    logger.debug(f"[SENTRY] Initialized for {environment} environment")
    return True


def capture_exception(exception: BaseException, extra: Optional[dict] = None) -> None:
    """
    Manually capture an exception to Sentry.

    Use this for exceptions that are caught and converted into a response but
    should still be tracked.

    Example:
        try:
            await service.forward(event)
        except Exception as e:
            capture_exception(e, extra={"order_id": order.id})
            return error_response()
    """
    if not _initialized:
        return

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"[SENTRY] Failed to capture exception: {e}")


def capture_message(message: str, level: str = "info", extra: Optional[dict] = None) -> None:
    """
    Capture a message to Sentry.

    Use this for important events that aren't exceptions, such as rejected
    webhook signatures.
    """
    if not _initialized:
        return

    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            sentry_sdk.capture_message(message, level=level)
    except Exception as e:
        logger.error(f"[SENTRY] Failed to capture message: {e}")
