"""Shopify order -> TikTok Purchase event mapping.

WHAT:
    Pure functions that turn a raw webhook body into a ConversionEvent:
    parse_order -> get_skip_reason -> build_event (which uses map_contents).

WHY:
    Keeping the transform free of I/O and shared state means every webhook
    builds its own event and the functions are trivially testable.

REFERENCES:
    - https://shopify.dev/docs/api/admin-rest/latest/resources/webhook#event-topics-orders-create
    - https://business-api.tiktok.com/portal/docs?id=1771101303285761
"""

import json
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Union

from pydantic import ValidationError

from order_relay.exceptions import MalformedOrderError
from order_relay.schemas import (
    ContentItem,
    ConversionEvent,
    EventContext,
    EventProperties,
    InboundOrder,
    LineItem,
    PageContext,
    UserContext,
)
from order_relay.security import sha256_lower

logger = logging.getLogger(__name__)

PURCHASE_EVENT = "Purchase"
# Placeholder id for a line item without product_id, variant_id, sku or id.
# build_event refuses to send an order containing it.
MISSING_CONTENT_ID = "undefined"
CANCELLED_FINANCIAL_STATUSES = {"refunded", "voided"}
THANK_YOU_PATH = "/checkout/thank_you"


# =============================================================================
# PARSING & POLICY
# =============================================================================

def parse_order(raw_body: bytes) -> InboundOrder:
    """Deserialize the raw webhook body into an InboundOrder.

    Raises:
        MalformedOrderError: If the body is not JSON or not an order object
    """
    try:
        data = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedOrderError(f"Invalid JSON payload: {e}")

    if not isinstance(data, dict):
        raise MalformedOrderError("Order payload must be a JSON object")

    try:
        return InboundOrder.model_validate(data)
    except ValidationError as e:
        raise MalformedOrderError(f"Invalid order payload: {e.error_count()} validation error(s)")


def get_skip_reason(order: InboundOrder, skip_cancelled: bool = True) -> Optional[str]:
    """Return why this order should not be forwarded, or None to forward it.

    Test orders are always skipped. Cancelled, refunded and voided orders are
    skipped only when skip_cancelled is enabled.
    """
    if order.test is True:
        return "test_order"

    if not skip_cancelled:
        return None

    if order.cancelled_at:
        return "cancelled_order"

    if (order.financial_status or "").lower() in CANCELLED_FINANCIAL_STATUSES:
        return "refunded_order"

    return None


# =============================================================================
# CONTENT MAPPER
# =============================================================================

def _to_number(value: Any) -> float:
    """Numeric conversion that yields NaN instead of raising."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(str(value).strip())
    except ValueError:
        return math.nan


def _first_present(*values: Any) -> Optional[Any]:
    for value in values:
        if value is not None and value != "":
            return value
    return None


def map_contents(line_items: Optional[Iterable[Union[LineItem, dict]]]) -> List[ContentItem]:
    """Project Shopify line items into TikTok content items.

    content_id is the first present of product_id, variant_id, sku, id.
    A non-numeric price is kept as NaN so the caller can reject the order.
    """
    contents = []
    for item in line_items or []:
        if isinstance(item, dict):
            item = LineItem.model_validate(item)
        content_id = _first_present(item.product_id, item.variant_id, item.sku, item.id)
        contents.append(
            ContentItem(
                content_id=str(content_id) if content_id is not None else MISSING_CONTENT_ID,
                content_type="product",
                content_name=item.title,
                quantity=item.quantity,
                price=_to_number(item.price),
            )
        )
    return contents


# =============================================================================
# EVENT BUILDER
# =============================================================================

def _resolve_page_url(
    order: InboundOrder,
    page_url: Optional[str],
    store_domain: Optional[str],
) -> Optional[str]:
    if page_url:
        return page_url

    domain = order.domain or store_domain
    if domain:
        return f"https://{domain}{THANK_YOU_PATH}"

    return None


def _resolve_timestamp(order: InboundOrder, timestamp_source: str, now: float) -> int:
    """Epoch seconds for the event.

    "received" reports the time the webhook was processed; "order_created"
    uses Shopify's created_at and falls back to now when it is unusable.
    A created_at without an offset is read as UTC.
    """
    if timestamp_source == "order_created":
        if order.created_at:
            try:
                created = datetime.fromisoformat(order.created_at)
                if created.tzinfo is None:
                    created = created.replace(tzinfo=timezone.utc)
                return int(created.timestamp())
            except ValueError:
                logger.warning(
                    f"[ORDER_MAPPING] Unparseable created_at on order {order.id}, using receipt time",
                    extra={"created_at": order.created_at},
                )
        else:
            logger.warning(f"[ORDER_MAPPING] Order {order.id} has no created_at, using receipt time")

    return int(now)


def _content_category(line_items: List[LineItem]) -> Optional[str]:
    for item in line_items:
        if item.product_type:
            return item.product_type
    return None


def build_event(
    order: InboundOrder,
    page_url: Optional[str],
    pixel_id: str,
    *,
    default_currency: str = "PKR",
    store_domain: Optional[str] = None,
    timestamp_source: str = "received",
    now: Optional[float] = None,
) -> ConversionEvent:
    """Assemble the TikTok Purchase event for one order.

    WHAT: Maps order totals, contents and hashed PII into the event payload
    WHY: event_id is derived only from the order id, so a webhook retried by
         Shopify produces the same event_id and TikTok can deduplicate it

    Args:
        order: Parsed Shopify order
        page_url: Explicit page URL (usually order_status_url)
        pixel_id: TikTok pixel code
        default_currency: Used when the order has no currency
        store_domain: Fallback domain for the thank-you page URL
        timestamp_source: "received" or "order_created"
        now: Epoch seconds to treat as the current time

    Returns:
        ConversionEvent ready to forward

    Raises:
        MalformedOrderError: If value or any price is not a finite number, or a
            line item has no usable identifier
    """
    if now is None:
        now = time.time()

    total_value = _to_number(order.total_price)
    if not math.isfinite(total_value):
        raise MalformedOrderError(f"Order {order.id} has non-numeric total_price: {order.total_price!r}")

    contents = map_contents(order.line_items)
    for content in contents:
        if not math.isfinite(content.price):
            raise MalformedOrderError(
                f"Order {order.id} has a line item with non-numeric price ({content.content_id})"
            )
        if content.content_id == MISSING_CONTENT_ID:
            raise MalformedOrderError(f"Order {order.id} has a line item without any identifier")

    customer = order.customer
    email_hashed = sha256_lower(_first_present(customer.email if customer else None, order.email))
    phone_hashed = sha256_lower(
        _first_present(
            customer.phone if customer else None,
            order.billing_address.phone if order.billing_address else None,
            order.shipping_address.phone if order.shipping_address else None,
        )
    )

    resolved_url = _resolve_page_url(order, page_url, store_domain)
    if resolved_url is None:
        logger.warning(
            f"[ORDER_MAPPING] No page URL for order {order.id}: set STORE_DOMAIN to provide a default"
        )

    event = ConversionEvent(
        pixel_code=pixel_id,
        event=PURCHASE_EVENT,
        event_id=str(order.id),
        timestamp=_resolve_timestamp(order, timestamp_source, now),
        context=EventContext(
            page=PageContext(url=resolved_url) if resolved_url else None,
            user=UserContext(
                external_id=[email_hashed] if email_hashed else [],
                phone_number=[phone_hashed] if phone_hashed else [],
            ),
            ip=order.browser_ip,
            user_agent=order.client_details.user_agent if order.client_details else None,
        ),
        properties=EventProperties(
            contents=contents,
            currency=str(order.currency or default_currency),
            value=total_value,
            content_category=_content_category(order.line_items),
        ),
    )

    logger.info(
        f"[ORDER_MAPPING] Built {PURCHASE_EVENT} event for order {order.id}",
        extra={
            "event_id": event.event_id,
            "value": total_value,
            "currency": event.properties.currency,
            "items": len(contents),
            "has_email": bool(email_hashed),
            "has_phone": bool(phone_hashed),
        },
    )

    return event
