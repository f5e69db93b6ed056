"""FastAPI application entrypoint.

Validates configuration, wires the TikTok service, includes the Shopify
webhook router, and exposes health and root endpoints.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
from fastapi import FastAPI

from .config import Settings, get_settings
from .routers import shopify_webhooks as shopify_webhooks_router
from .schemas import HealthResponse, RootResponse
from .services.tiktok_events_service import TikTokEventsService
from .telemetry import init_sentry

logger = logging.getLogger(__name__)


def _presence(value: Optional[str]) -> str:
    return "configured" if value else "missing"


def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Build the relay application.

    Args:
        settings: Explicit settings (defaults to the cached environment settings)
        http_client: AsyncClient for outbound calls; when None a pooled client
            is opened for the app lifespan

    Raises:
        ConfigurationError: If required configuration is missing (not in local mode)
    """
    settings = settings or get_settings()

    logging.basicConfig(level=settings.LOG_LEVEL.upper())
    settings.validate_required()

    sentry_enabled = init_sentry(settings.SENTRY_DSN, settings.ENVIRONMENT)

    events_service = TikTokEventsService(
        access_token=settings.TIKTOK_ACCESS_TOKEN,
        endpoints=settings.tiktok_endpoints,
        timeout=settings.TIKTOK_REQUEST_TIMEOUT_SECONDS,
        dry_run=settings.skip_outbound,
        client=http_client,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = events_service.client is None
        if owns_client:
            events_service.client = httpx.AsyncClient(timeout=settings.TIKTOK_REQUEST_TIMEOUT_SECONDS)

        logger.info(
            f"[STARTUP] Relay ready in {settings.ENVIRONMENT} mode",
            extra={
                "pixel_id": settings.TIKTOK_PIXEL_ID,
                "enforce_signature": settings.enforce_signature,
                "skip_outbound": settings.skip_outbound,
                "skip_cancelled": settings.SKIP_CANCELLED_ORDERS,
                "endpoints": len(settings.tiktok_endpoints),
                "sentry": sentry_enabled,
            },
        )
        if not settings.enforce_signature:
            logger.warning("[STARTUP] Webhook signature verification is DISABLED outside production")

        yield

        if owns_client:
            await events_service.aclose()
            events_service.client = None

    app = FastAPI(
        title="Shopify TikTok Relay",
        description="Forwards Shopify orders/create webhooks to the TikTok Events API as Purchase events.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.events_service = events_service

    app.include_router(shopify_webhooks_router.router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"], summary="Health check")
    def health():
        """Reports whether each credential is configured, never its value."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat(),
            environment=settings.ENVIRONMENT,
            pixel_id=_presence(settings.TIKTOK_PIXEL_ID),
            access_token=_presence(settings.TIKTOK_ACCESS_TOKEN),
            webhook_secret=_presence(settings.SHOPIFY_WEBHOOK_SECRET),
        )

    @app.get("/", response_model=RootResponse, tags=["Health"])
    def root():
        return RootResponse(
            message="Shopify TikTok relay is running",
            endpoints={
                "webhook": "POST /webhooks/shopify/orders-create",
                "health": "GET /health",
                "root": "GET /",
            },
        )

    return app
