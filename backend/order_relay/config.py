"""Settings management.

WHAT:
    Loads all relay configuration from the environment (or a local .env file)
    once at startup into an explicit Settings object.

WHY:
    Business logic never reads os.environ directly. The app factory receives a
    Settings instance and hands it to the router and the TikTok service.

MODES (ENVIRONMENT):
    production  - webhook signatures enforced, events forwarded
    development - signatures not checked, events forwarded
    local       - signatures not checked, outbound calls skipped
"""

import logging
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_SETTINGS = ("TIKTOK_PIXEL_ID", "TIKTOK_ACCESS_TOKEN", "SHOPIFY_WEBHOOK_SECRET")


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    # Credentials (never given defaults in code)
    TIKTOK_PIXEL_ID: Optional[str] = None
    TIKTOK_ACCESS_TOKEN: Optional[str] = None
    SHOPIFY_WEBHOOK_SECRET: Optional[str] = None

    ENVIRONMENT: Literal["production", "development", "local"] = "development"

    # TikTok Events API
    TIKTOK_EVENTS_URL: str = "https://business-api.tiktok.com/open_api/v1.3/event/track/"
    # Comma-separated list, tried in order after TIKTOK_EVENTS_URL
    TIKTOK_FALLBACK_URLS: str = ""
    TIKTOK_ENDPOINT_FAILOVER: bool = False
    TIKTOK_REQUEST_TIMEOUT_SECONDS: float = 15.0

    # Order policy
    SKIP_CANCELLED_ORDERS: bool = True
    DEFAULT_CURRENCY: str = "PKR"
    # Used for the thank-you page URL when the order carries no domain
    STORE_DOMAIN: Optional[str] = None
    EVENT_TIMESTAMP_SOURCE: Literal["received", "order_created"] = "received"

    # Observability
    SENTRY_DSN: Optional[str] = None
    LOG_LEVEL: str = "INFO"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def enforce_signature(self) -> bool:
        """Webhook HMAC is mandatory only in production."""
        return self.ENVIRONMENT == "production"

    @property
    def skip_outbound(self) -> bool:
        """Local mode never calls TikTok."""
        return self.ENVIRONMENT == "local"

    @property
    def tiktok_endpoints(self) -> List[str]:
        """Ordered candidate endpoints for the failover loop.

        Only the primary endpoint is returned when failover is disabled.
        """
        endpoints = [self.TIKTOK_EVENTS_URL]
        if not self.TIKTOK_ENDPOINT_FAILOVER:
            return endpoints

        for url in self.TIKTOK_FALLBACK_URLS.split(","):
            url = url.strip()
            if url and url not in endpoints:
                endpoints.append(url)
        return endpoints

    def missing_required(self) -> List[str]:
        return [name for name in REQUIRED_SETTINGS if not getattr(self, name)]

    def validate_required(self) -> None:
        """Fail fast when credentials are missing.

        Raises:
            ConfigurationError: If any required value is unset outside local mode.
        """
        missing = self.missing_required()
        if not missing:
            return

        if self.ENVIRONMENT == "local":
            logger.warning(
                f"[CONFIG] Running in local mode without {', '.join(missing)} - "
                "do not use this configuration in production"
            )
            return

        logger.error(f"[CONFIG] Missing required settings: {', '.join(missing)}")
        raise ConfigurationError(missing)


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance.

    Raises:
        ConfigurationError: If a setting has a value of the wrong type or an
            unknown ENVIRONMENT mode.
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        errors = [(".".join(str(part) for part in err["loc"]), err["msg"]) for err in e.errors()]
        logger.error(f"[CONFIG] Invalid settings: {', '.join(name for name, _ in errors)}")
        raise ConfigurationError(
            [name for name, _ in errors],
            message="Invalid environment variable(s): " + "; ".join(f"{name}: {msg}" for name, msg in errors),
        ) from e
