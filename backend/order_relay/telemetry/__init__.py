"""
Telemetry Module
================

Observability for the relay: Sentry error tracking on top of standard
`logging` (configured in order_relay/main.py).

Usage:
    from order_relay.telemetry import init_sentry, capture_exception

    init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)
"""

from order_relay.telemetry.sentry import (
    init_sentry,
    capture_exception,
    capture_message,
)

__all__ = [
    "init_sentry",
    "capture_exception",
    "capture_message",
]
