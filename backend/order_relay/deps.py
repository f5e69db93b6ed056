"""Dependency providers.

Settings and the TikTok service are created once by the app factory and kept
on `app.state`; handlers receive them through these dependencies.
"""

from fastapi import Request

from .config import Settings
from .services.tiktok_events_service import TikTokEventsService


def get_app_settings(request: Request) -> Settings:
    """Settings the app was built with."""
    return request.app.state.settings


def get_events_service(request: Request) -> TikTokEventsService:
    """Shared TikTok Events service (holds the pooled HTTP client)."""
    return request.app.state.events_service
