"""Pytest configuration for relay integration tests

WHAT: Shared fixtures for HTTP endpoint and TikTok service tests
WHY: Every test builds its own app with explicit Settings and a stubbed
     TikTok transport, so no test touches the network or the real environment
REFERENCES:
    - order_relay/main.py: create_app
    - order_relay/config.py: Settings
    - order_relay/services/tiktok_events_service.py
"""

import base64
import hashlib
import hmac
import json
from typing import Callable, List, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from order_relay.config import Settings
from order_relay.main import create_app


TEST_SECRET = "test-webhook-secret"
TEST_PIXEL_ID = "TESTPIXEL123"
TEST_TOKEN = "test-access-token"
PRIMARY_URL = "https://business-api.tiktok.com/open_api/v1.3/event/track/"
FALLBACK_URL = "https://fallback.example.com/open_api/v1.3/event/track/"

WEBHOOK_PATH = "/webhooks/shopify/orders-create"


# ============================================================================
# TikTok Stub
# ============================================================================

Reply = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class TikTokStub:
    """Records outbound requests and replays queued responses.

    Queue entries are httpx.Response objects or callables taking the request
    (use a callable to raise transport errors). When the queue is empty the
    stub answers with TikTok's success shape.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.replies: List[Reply] = []

    def queue(self, *replies: Reply) -> None:
        self.replies.extend(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.replies:
            reply = self.replies.pop(0)
            if callable(reply):
                return reply(request)
            return reply
        return httpx.Response(200, json={"code": 0, "message": "OK", "request_id": "req-123"})

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(r.content) for r in self.requests]

    @property
    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]

    def async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


# ============================================================================
# Helpers
# ============================================================================

def sign(body: bytes, secret: str = TEST_SECRET) -> str:
    """Shopify-style base64 HMAC-SHA256 of the raw body."""
    return base64.b64encode(hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()).decode("utf-8")


def make_settings(**overrides) -> Settings:
    values = {
        "TIKTOK_PIXEL_ID": TEST_PIXEL_ID,
        "TIKTOK_ACCESS_TOKEN": TEST_TOKEN,
        "SHOPIFY_WEBHOOK_SECRET": TEST_SECRET,
        "ENVIRONMENT": "development",
        "TIKTOK_EVENTS_URL": PRIMARY_URL,
        "SENTRY_DSN": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def tiktok() -> TikTokStub:
    return TikTokStub()


@pytest.fixture
def make_client(tiktok):
    """Factory: TestClient for an app built with the given setting overrides."""

    def _make(**overrides) -> TestClient:
        app = create_app(make_settings(**overrides), http_client=tiktok.async_client())
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    """Development-mode client (signatures not enforced)."""
    return make_client()


@pytest.fixture
def production_client(make_client) -> TestClient:
    """Production-mode client (signatures enforced)."""
    return make_client(ENVIRONMENT="production")


@pytest.fixture
def sample_order() -> dict:
    return {
        "id": 1001,
        "total_price": "49.99",
        "currency": "USD",
        "customer": {"email": "A@B.com"},
        "line_items": [{"id": 1, "title": "Shirt", "quantity": 1, "price": "49.99"}],
    }
