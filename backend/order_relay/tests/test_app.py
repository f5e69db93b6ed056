"""Tests for app wiring: configuration validation, health and root endpoints.

REFERENCES:
    - order_relay/main.py: create_app, /health, /
    - order_relay/config.py: Settings.validate_required
"""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from order_relay import start_api
from order_relay.config import get_settings
from order_relay.deps import get_app_settings, get_events_service
from order_relay.exceptions import ConfigurationError
from order_relay.main import create_app
from order_relay.tests.conftest import (
    FALLBACK_URL,
    PRIMARY_URL,
    TEST_PIXEL_ID,
    TEST_SECRET,
    TEST_TOKEN,
    make_settings,
)


class TestConfiguration:

    @pytest.mark.parametrize("environment", ["production", "development"])
    def test_missing_credentials_are_fatal(self, environment):
        settings = make_settings(ENVIRONMENT=environment, TIKTOK_ACCESS_TOKEN=None, SHOPIFY_WEBHOOK_SECRET=None)

        with pytest.raises(ConfigurationError) as exc_info:
            create_app(settings)

        assert exc_info.value.missing == ["TIKTOK_ACCESS_TOKEN", "SHOPIFY_WEBHOOK_SECRET"]

    def test_local_mode_tolerates_missing_credentials(self):
        settings = make_settings(
            ENVIRONMENT="local",
            TIKTOK_PIXEL_ID=None,
            TIKTOK_ACCESS_TOKEN=None,
            SHOPIFY_WEBHOOK_SECRET=None,
        )

        app = create_app(settings)

        assert app.state.events_service.dry_run is True

    def test_modes(self):
        assert make_settings(ENVIRONMENT="production").enforce_signature is True
        assert make_settings(ENVIRONMENT="development").enforce_signature is False
        assert make_settings(ENVIRONMENT="development").skip_outbound is False
        assert make_settings(ENVIRONMENT="local").skip_outbound is True

    def test_endpoints_only_primary_without_failover(self):
        settings = make_settings(TIKTOK_FALLBACK_URLS=FALLBACK_URL)

        assert settings.tiktok_endpoints == [PRIMARY_URL]

    def test_endpoints_with_failover_keep_order_and_drop_duplicates(self):
        settings = make_settings(
            TIKTOK_ENDPOINT_FAILOVER=True,
            TIKTOK_FALLBACK_URLS=f" {FALLBACK_URL}, {PRIMARY_URL},,",
        )

        assert settings.tiktok_endpoints == [PRIMARY_URL, FALLBACK_URL]


    def test_request_timeout_reaches_events_service(self):
        app = create_app(make_settings(TIKTOK_REQUEST_TIMEOUT_SECONDS=12.0))

        assert app.state.events_service.timeout == 12.0


class TestInvalidSettings:
    """Badly typed environment values surface as ConfigurationError."""

    @pytest.fixture(autouse=True)
    def fresh_settings(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    @pytest.mark.parametrize("name, value", [("ENVIRONMENT", "staging"), ("PORT", "not-a-port")])
    def test_invalid_value_raises_configuration_error(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigurationError) as exc_info:
            get_settings()

        assert exc_info.value.missing == [name]
        assert name in exc_info.value.message

    def test_startup_exits_with_message(self, monkeypatch, capsys):
        monkeypatch.setenv("ENVIRONMENT", "staging")

        with pytest.raises(SystemExit) as exc_info:
            start_api.main()

        assert exc_info.value.code == 1
        assert "ENVIRONMENT" in capsys.readouterr().err


class TestHealth:

    def test_health_reports_presence_not_values(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["environment"] == "development"
        assert data["pixel_id"] == "configured"
        assert data["access_token"] == "configured"
        assert data["webhook_secret"] == "configured"
        assert "timestamp" in data

        for secret in (TEST_PIXEL_ID, TEST_TOKEN, TEST_SECRET):
            assert secret not in response.text

    def test_health_reports_missing_values_in_local_mode(self):
        app = create_app(make_settings(ENVIRONMENT="local", TIKTOK_ACCESS_TOKEN=None))

        data = TestClient(app).get("/health").json()

        assert data["access_token"] == "missing"
        assert data["pixel_id"] == "configured"


def test_root_lists_routes(client):
    response = client.get("/")

    assert response.status_code == 200
    endpoints = response.json()["endpoints"]
    assert endpoints["webhook"] == "POST /webhooks/shopify/orders-create"
    assert endpoints["health"] == "GET /health"


def test_dependencies_read_app_state(client):
    request = SimpleNamespace(app=client.app)

    assert get_app_settings(request) is client.app.state.settings
    assert get_events_service(request) is client.app.state.events_service
