"""Shopify order webhooks -> TikTok Purchase events.

WHAT:
    Implements POST /webhooks/shopify/orders-create.

FLOW:
    1. Verify HMAC signature on the raw body (production only)
    2. Parse the order
    3. Skip test / cancelled / refunded orders (200, nothing forwarded)
    4. Build the TikTok Purchase event
    5. Forward it once (no in-process retry)

RESPONSES:
    200 - forwarded, or intentionally skipped (Shopify must not retry)
    401 - invalid or missing signature (production only)
    500 - malformed body, TikTok failure, or any unexpected error

REFERENCES:
    - https://shopify.dev/docs/apps/build/webhooks
    - order_relay/services/order_mapping.py
    - order_relay/services/tiktok_events_service.py
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from order_relay.config import Settings
from order_relay.deps import get_app_settings, get_events_service
from order_relay.exceptions import (
    MalformedOrderError,
    OrderSkipped,
    UpstreamError,
    WebhookAuthenticationError,
)
from order_relay.schemas import WebhookResponse
from order_relay.security import SHOPIFY_HMAC_HEADER, verify_shopify_webhook
from order_relay.services.order_mapping import build_event, get_skip_reason, parse_order
from order_relay.services.tiktok_events_service import TikTokEventsService
from order_relay.telemetry import capture_exception, capture_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks/shopify", tags=["Shopify Webhooks"])


def _respond(status_code: int, outcome: str, detail: str, event_id: Optional[str] = None) -> JSONResponse:
    body = WebhookResponse(status=outcome, detail=detail, event_id=event_id)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def _process_order_webhook(
    request: Request,
    settings: Settings,
    events_service: TikTokEventsService,
) -> Tuple[str, Dict[str, Any]]:
    """Run one webhook delivery through the pipeline.

    Returns:
        The event_id and the TikTok response body

    Raises:
        WebhookAuthenticationError, MalformedOrderError, OrderSkipped, UpstreamError
    """
    body = await request.body()

    if settings.enforce_signature:
        hmac_header = request.headers.get(SHOPIFY_HMAC_HEADER)
        if not verify_shopify_webhook(body, hmac_header, settings.SHOPIFY_WEBHOOK_SECRET):
            raise WebhookAuthenticationError()
        logger.debug("[SHOPIFY_WEBHOOK] HMAC verification passed")

    order = parse_order(body)
    logger.info(
        f"[SHOPIFY_WEBHOOK] orders/create received for order {order.id}",
        extra={
            "order_id": str(order.id),
            "line_items": len(order.line_items),
            "shop_domain": request.headers.get("X-Shopify-Shop-Domain"),
        },
    )

    skip_reason = get_skip_reason(order, skip_cancelled=settings.SKIP_CANCELLED_ORDERS)
    if skip_reason:
        raise OrderSkipped(skip_reason, f"Ignored order {order.id}: {skip_reason}")

    event = build_event(
        order,
        page_url=order.order_status_url,
        pixel_id=settings.TIKTOK_PIXEL_ID or "",
        default_currency=settings.DEFAULT_CURRENCY,
        store_domain=settings.STORE_DOMAIN,
        timestamp_source=settings.EVENT_TIMESTAMP_SOURCE,
    )

    result = await events_service.forward(event)
    return event.event_id, result


@router.post("/orders-create", response_model=WebhookResponse)
async def handle_orders_create(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    events_service: TikTokEventsService = Depends(get_events_service),
):
    """Handle orders/create webhook - reports the purchase to TikTok.

    Every delivery gets exactly one response; no exception escapes this handler.
    """
    try:
        event_id, result = await _process_order_webhook(request, settings, events_service)

    except WebhookAuthenticationError as e:
        logger.warning("[SHOPIFY_WEBHOOK] orders/create - Invalid signature")
        capture_message(
            "Rejected Shopify webhook with invalid signature",
            level="warning",
            extra={"client": request.client.host if request.client else "unknown"},
        )
        return _respond(status.HTTP_401_UNAUTHORIZED, "error", e.message)

    except OrderSkipped as e:
        logger.info(f"[SHOPIFY_WEBHOOK] {e.message}", extra={"reason": e.reason})
        return _respond(status.HTTP_200_OK, "skipped", e.message)

    except MalformedOrderError as e:
        logger.error(f"[SHOPIFY_WEBHOOK] Malformed order: {e.message}")
        return _respond(status.HTTP_500_INTERNAL_SERVER_ERROR, "error", "Malformed order payload")

    except UpstreamError as e:
        logger.error(
            f"[SHOPIFY_WEBHOOK] Failed to send event to TikTok: {e.message}",
            extra={"error_type": type(e).__name__},
        )
        return _respond(status.HTTP_500_INTERNAL_SERVER_ERROR, "error", "Failed to forward event")

    except Exception as e:
        logger.exception(f"[SHOPIFY_WEBHOOK] Unexpected error processing orders/create: {e}")
        capture_exception(e, extra={"path": request.url.path})
        return _respond(status.HTTP_500_INTERNAL_SERVER_ERROR, "error", "Internal error")

    if result.get("dry_run"):
        return _respond(status.HTTP_200_OK, "ok", "Event built, not sent (local mode)", event_id=event_id)

    logger.info(f"[SHOPIFY_WEBHOOK] Order {event_id} forwarded to TikTok")
    return _respond(status.HTTP_200_OK, "ok", "Event forwarded", event_id=event_id)
