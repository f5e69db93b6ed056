#!/usr/bin/env python3
"""
Relay Startup Script

Starts the Shopify -> TikTok relay with uvicorn. Configuration is validated
before the server binds, so a missing credential stops the process.
"""

import sys

import uvicorn

from order_relay.config import get_settings
from order_relay.exceptions import ConfigurationError
from order_relay.main import create_app


def main():
    """Start the relay server."""
    try:
        settings = get_settings()
        app = create_app(settings)
    except ConfigurationError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        print("   Fix them in the environment or a local .env file.", file=sys.stderr)
        sys.exit(1)

    print("🚀 Starting Shopify TikTok relay...")
    print(f"   🌍 Environment:    {settings.ENVIRONMENT}")
    print(f"   🔐 Webhook secret: {'configured' if settings.SHOPIFY_WEBHOOK_SECRET else 'missing'}")
    print(f"   📨 Webhook:        http://{settings.HOST}:{settings.PORT}/webhooks/shopify/orders-create")
    print("")

    try:
        uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
    except KeyboardInterrupt:
        print("\n👋 Shutting down relay...")


if __name__ == "__main__":
    main()
