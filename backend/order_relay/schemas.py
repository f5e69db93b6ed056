"""Pydantic schemas for webhook payloads, TikTok events and API responses."""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# INBOUND: SHOPIFY ORDER
# =============================================================================

class ShopifyModel(BaseModel):
    """Base for Shopify payload pieces: unknown fields are accepted and ignored."""

    model_config = ConfigDict(extra="ignore")


class Customer(ShopifyModel):
    email: Optional[str] = None
    phone: Optional[str] = None


class Address(ShopifyModel):
    phone: Optional[str] = None


class ClientDetails(ShopifyModel):
    user_agent: Optional[str] = None


class LineItem(ShopifyModel):
    """One purchased line item as sent by Shopify.

    Identifiers and price are kept loose: Shopify sends ids as integers and
    prices as decimal strings, but older API versions and test tools vary.
    """
    id: Optional[Union[int, str]] = None
    product_id: Optional[Union[int, str]] = None
    variant_id: Optional[Union[int, str]] = None
    sku: Optional[Union[str, int]] = None
    title: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[Union[str, float, int]] = None
    product_type: Optional[str] = None


class InboundOrder(ShopifyModel):
    """Shopify orders/create webhook body (only the fields the relay uses).

    Example:
        {
            "id": 1001,
            "total_price": "49.99",
            "currency": "USD",
            "customer": {"email": "a@b.com"},
            "line_items": [{"id": 1, "title": "Shirt", "quantity": 1, "price": "49.99"}]
        }
    """
    id: Union[int, str]
    total_price: Optional[Union[str, float, int]] = None
    currency: Optional[str] = None
    email: Optional[str] = None
    customer: Optional[Customer] = None
    billing_address: Optional[Address] = None
    shipping_address: Optional[Address] = None
    line_items: List[LineItem] = Field(default_factory=list)
    test: bool = False
    cancelled_at: Optional[str] = None
    financial_status: Optional[str] = None
    order_status_url: Optional[str] = None
    domain: Optional[str] = None
    client_details: Optional[ClientDetails] = None
    browser_ip: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator("test", mode="before")
    @classmethod
    def _only_literal_true(cls, value: Any) -> bool:
        # Only a JSON true marks a test order; "true", 1 or junk do not
        return value is True


# =============================================================================
# OUTBOUND: TIKTOK EVENT
# =============================================================================

class ContentItem(BaseModel):
    """One entry of the TikTok `properties.contents` array."""
    content_id: str
    content_type: str = "product"
    content_name: Optional[str] = None
    quantity: Optional[int] = None
    price: float


class PageContext(BaseModel):
    url: str


class UserContext(BaseModel):
    """Hashed identifiers; each list holds zero or more SHA-256 digests."""
    external_id: List[str] = Field(default_factory=list)
    phone_number: List[str] = Field(default_factory=list)


class EventContext(BaseModel):
    page: Optional[PageContext] = None
    user: UserContext = Field(default_factory=UserContext)
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class EventProperties(BaseModel):
    contents: List[ContentItem] = Field(default_factory=list)
    currency: str
    value: float
    content_category: Optional[str] = None


class ConversionEvent(BaseModel):
    """TikTok Events API payload for a single Purchase.

    WHAT: Built fresh per webhook, never stored
    WHY: event_id is the order id so TikTok can deduplicate retried webhooks
    """
    pixel_code: str
    event: str = "Purchase"
    event_id: str
    timestamp: int
    context: EventContext
    properties: EventProperties

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict with unset optional fields dropped."""
        return self.model_dump(mode="json", exclude_none=True)


# =============================================================================
# API RESPONSES
# =============================================================================

class WebhookResponse(BaseModel):
    """Body returned to Shopify for every webhook delivery."""
    status: str = Field(description="ok, skipped, or error", examples=["ok"])
    detail: str = Field(description="Short human-readable outcome")
    event_id: Optional[str] = Field(None, description="Forwarded event id")


class HealthResponse(BaseModel):
    """Health check response. Reports presence of configuration, never values."""
    status: str = Field(description="Service status", examples=["ok"])
    timestamp: str
    environment: str
    pixel_id: str
    access_token: str
    webhook_secret: str


class RootResponse(BaseModel):
    message: str
    endpoints: Dict[str, str]
