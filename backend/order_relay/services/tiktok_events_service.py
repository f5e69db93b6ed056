"""TikTok Events API Service.

WHAT:
    Sends server-side Purchase events to TikTok for ad attribution.

WHY:
    - Server-side events survive ad blockers and browser tracking limits
    - Deduplication with the browser pixel via event_id (the order id)

HOW:
    POST {TIKTOK_EVENTS_URL} with an `Access-Token` header. TikTok answers
    HTTP 200 with `{"code": 0, ...}` on success; any other code is an
    application-level failure even though the HTTP status is 2xx.

    With failover enabled, candidate endpoints are tried in order until one
    succeeds. There is no backoff and no retry of the same endpoint.

REFERENCES:
    - https://business-api.tiktok.com/portal/docs?id=1771101027431425
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from order_relay.exceptions import UpstreamError
from order_relay.schemas import ConversionEvent

logger = logging.getLogger(__name__)

TIKTOK_SUCCESS_CODE = 0


class TikTokEventsError(UpstreamError):
    """Base exception for TikTok Events API errors."""

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message)
        self.endpoint = endpoint


class TikTokHTTPError(TikTokEventsError):
    """TikTok answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str, endpoint: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code} from TikTok: {body[:500]}", endpoint)


class TikTokAPIError(TikTokEventsError):
    """TikTok answered 2xx but reported an application-level error code."""

    def __init__(self, code: Any, api_message: str, endpoint: Optional[str] = None):
        self.code = code
        self.api_message = api_message
        super().__init__(f"TikTok API error: {api_message} (code: {code})", endpoint)


class TikTokResponseError(TikTokEventsError):
    """TikTok answered 2xx with a body that is not a JSON object."""


class TikTokNetworkError(TikTokEventsError):
    """Timeout or transport failure before a response arrived."""


class TikTokEndpointsExhaustedError(TikTokEventsError):
    """Every candidate endpoint failed.

    ATTRIBUTES:
        attempts: (endpoint, error) pairs in the order they were tried
        last_error: The error from the final candidate
    """

    def __init__(self, attempts: List[Tuple[str, TikTokEventsError]]):
        self.attempts = attempts
        self.last_error = attempts[-1][1]
        super().__init__(
            f"All {len(attempts)} TikTok endpoint(s) failed; last error: {self.last_error.message}",
            self.last_error.endpoint,
        )


class TikTokEventsService:
    """Service for sending server-side events to the TikTok Events API.

    Usage:
        ```python
        service = TikTokEventsService(
            access_token="token",
            endpoints=["https://business-api.tiktok.com/open_api/v1.3/event/track/"],
        )
        await service.forward(event)
        ```
    """

    def __init__(
        self,
        access_token: Optional[str],
        endpoints: Sequence[str],
        timeout: float = 15.0,
        dry_run: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the service.

        Args:
            access_token: TikTok Events API access token
            endpoints: Candidate event-track URLs, tried in order
            timeout: Per-request timeout in seconds
            dry_run: Build and log but never call TikTok (local mode)
            client: Shared AsyncClient for connection reuse; a short-lived
                client is opened per call when None
        """
        if not endpoints:
            raise ValueError("At least one TikTok endpoint is required")

        self.access_token = access_token
        self.endpoints = list(endpoints)
        self.timeout = timeout
        self.dry_run = dry_run
        self.client = client

    async def forward(self, event: ConversionEvent) -> Dict[str, Any]:
        """Send one event, trying each candidate endpoint until one succeeds.

        Returns:
            Parsed TikTok response body

        Raises:
            TikTokEventsError: The single endpoint failed
            TikTokEndpointsExhaustedError: Every candidate failed (failover mode)
        """
        payload = event.to_payload()

        if self.dry_run:
            logger.info(
                f"[TIKTOK_EVENTS] Local mode - not sending event {event.event_id}",
                extra={"event_id": event.event_id},
            )
            return {"code": TIKTOK_SUCCESS_CODE, "message": "skipped (local mode)", "dry_run": True}

        logger.info(
            f"[TIKTOK_EVENTS] Sending {event.event} event {event.event_id} to pixel {event.pixel_code}",
            extra={
                "event_id": event.event_id,
                "value": event.properties.value,
                "currency": event.properties.currency,
                "candidates": len(self.endpoints),
            },
        )

        attempts: List[Tuple[str, TikTokEventsError]] = []
        for endpoint in self.endpoints:
            try:
                return await self._post(endpoint, payload)
            except TikTokEventsError as e:
                attempts.append((endpoint, e))
                if len(self.endpoints) > 1:
                    logger.warning(
                        f"[TIKTOK_EVENTS] Endpoint failed, {len(self.endpoints) - len(attempts)} candidate(s) left",
                        extra={"endpoint": endpoint, "error": e.message},
                    )

        if len(attempts) == 1:
            raise attempts[0][1]

        logger.error(
            f"[TIKTOK_EVENTS] All {len(attempts)} endpoints failed for event {event.event_id}",
            extra={"endpoints": [endpoint for endpoint, _ in attempts]},
        )
        raise TikTokEndpointsExhaustedError(attempts) from attempts[-1][1]

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST one payload to one endpoint and interpret the response.

        Raises:
            TikTokNetworkError, TikTokHTTPError, TikTokResponseError, TikTokAPIError
        """
        headers = {
            "Content-Type": "application/json",
            "Access-Token": self.access_token or "",
        }

        try:
            if self.client is not None:
                response = await self.client.post(endpoint, json=payload, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(endpoint, json=payload, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException as e:
            logger.error(f"[TIKTOK_EVENTS] Timeout after {self.timeout}s", extra={"endpoint": endpoint})
            raise TikTokNetworkError(f"Timed out after {self.timeout}s sending to TikTok: {e}", endpoint)
        except httpx.RequestError as e:
            logger.error(f"[TIKTOK_EVENTS] Network error: {e}", extra={"endpoint": endpoint})
            raise TikTokNetworkError(f"Network error sending to TikTok: {e}", endpoint)

        if not response.is_success:
            logger.error(
                f"[TIKTOK_EVENTS] HTTP error: {response.status_code}",
                extra={"endpoint": endpoint, "status_code": response.status_code, "body": response.text[:500]},
            )
            raise TikTokHTTPError(response.status_code, response.text, endpoint)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"[TIKTOK_EVENTS] Unparseable response body: {e}", extra={"endpoint": endpoint})
            raise TikTokResponseError(f"Failed to parse TikTok response: {e}", endpoint)

        if not isinstance(data, dict):
            raise TikTokResponseError("TikTok response is not a JSON object", endpoint)

        code = data.get("code")
        if code != TIKTOK_SUCCESS_CODE:
            api_message = str(data.get("message", ""))
            logger.error(
                f"[TIKTOK_EVENTS] API error: {api_message} (code: {code})",
                extra={"endpoint": endpoint, "code": code, "request_id": data.get("request_id")},
            )
            raise TikTokAPIError(code, api_message, endpoint)

        logger.info(
            "[TIKTOK_EVENTS] Success",
            extra={"endpoint": endpoint, "request_id": data.get("request_id")},
        )
        return data
