"""
WhatsApp Graph API Client

Thin async wrapper over the Meta Graph API endpoints used to link a
WhatsApp Business Account and send messages. No retries are attempted;
every failure surfaces as ExternalServiceError.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from .base import (
    DEFAULT_GRAPH_API_VERSION,
    GRAPH_API_BASE_URL,
    WABA_FIELDS,
    WABA_MANAGEMENT_SCOPE,
    ExternalServiceError,
    PhoneNumberInfo,
    WABAInfo,
)

logger = structlog.get_logger(__name__)


@dataclass
class GraphAPIConfig:
    """Graph API credentials and transport settings."""

    app_id: Optional[str] = None
    app_secret: Optional[str] = None
    api_version: str = DEFAULT_GRAPH_API_VERSION
    timeout: float = 30.0

    @property
    def base_url(self) -> str:
        return f"{GRAPH_API_BASE_URL}/{self.api_version}"

    @classmethod
    def from_env(cls) -> "GraphAPIConfig":
        return cls(
            app_id=os.getenv("WHATSAPP_APP_ID"),
            app_secret=os.getenv("WHATSAPP_APP_SECRET"),
            api_version=os.getenv("WHATSAPP_API_VERSION", DEFAULT_GRAPH_API_VERSION),
            timeout=float(os.getenv("WHATSAPP_TIMEOUT_SECONDS", "30")),
        )


def _upstream_message(response: httpx.Response) -> Optional[str]:
    """Pull ``error.message`` out of a Graph API error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return error.get("message")
    return None


class WhatsAppGraphClient:
    """
    Graph API client.

    Args:
        config: Credentials, API version and timeout.
        transport: Optional httpx transport, used by tests to stub Meta.
    """

    def __init__(
        self,
        config: Optional[GraphAPIConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or GraphAPIConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        failure_message: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        client = await self._get_client()
        headers = {}
        if access_token is not None:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            response = await client.request(
                method, path, params=params, json=json, headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.error("graph_api_timeout", path=path, timeout=self.config.timeout)
            raise ExternalServiceError(failure_message) from e
        except httpx.HTTPError as e:
            logger.error("graph_api_transport_error", path=path, error=str(e))
            raise ExternalServiceError(failure_message) from e

        if response.status_code >= 400:
            upstream = _upstream_message(response)
            logger.error(
                "graph_api_error",
                path=path,
                status_code=response.status_code,
                upstream_message=upstream,
            )
            raise ExternalServiceError(
                failure_message,
                status_code=response.status_code,
                upstream_message=upstream,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                failure_message, status_code=response.status_code
            ) from e

        if not isinstance(data, dict):
            logger.error("graph_api_unexpected_body", path=path, body_type=type(data).__name__)
            raise ExternalServiceError(failure_message, status_code=response.status_code)
        return data

    # -------------------------------------------------------------------------
    # Embedded signup
    # -------------------------------------------------------------------------

    async def exchange_code_for_token(self, code: str) -> str:
        """Exchange an OAuth authorization code for an access token."""
        failure = "Failed to exchange code for access token"
        data = await self._request(
            "POST",
            "/oauth/access_token",
            failure,
            params={
                "client_id": self.config.app_id,
                "client_secret": self.config.app_secret,
                "code": code,
            },
        )
        token = data.get("access_token")
        if not token:
            raise ExternalServiceError(failure)
        logger.info("access_token_exchanged")
        return token

    async def debug_token(self, access_token: str) -> Dict[str, Any]:
        """Inspect a token; returns the ``data`` object of /debug_token."""
        data = await self._request(
            "GET",
            "/debug_token",
            "Failed to inspect access token",
            params={"input_token": access_token, "access_token": access_token},
        )
        info = data.get("data")
        return info if isinstance(info, dict) else {}

    async def resolve_waba_id(self, access_token: str) -> str:
        """Find the WABA id granted by the token's business-management scope."""
        token_info = await self.debug_token(access_token)
        scopes = token_info.get("granular_scopes")
        for scope in scopes if isinstance(scopes, list) else []:
            if not isinstance(scope, dict):
                continue
            if WABA_MANAGEMENT_SCOPE in str(scope.get("scope") or ""):
                target_ids = scope.get("target_ids") or []
                if target_ids:
                    return str(target_ids[0])
                break
        raise ExternalServiceError("No WABA ID found in token")

    async def get_waba_info(self, waba_id: str, access_token: str) -> WABAInfo:
        data = await self._request(
            "GET",
            f"/{waba_id}",
            "Failed to get WABA information",
            params={"fields": WABA_FIELDS, "access_token": access_token},
        )
        try:
            info = WABAInfo.from_api(data)
        except (KeyError, TypeError) as e:
            logger.error("graph_api_malformed_waba", waba_id=waba_id)
            raise ExternalServiceError("Failed to get WABA information") from e
        logger.info("waba_info_retrieved", waba_id=waba_id)
        return info

    async def get_phone_numbers(
        self,
        waba_id: str,
        access_token: str,
    ) -> List[PhoneNumberInfo]:
        data = await self._request(
            "GET",
            f"/{waba_id}/phone_numbers",
            "Failed to get phone numbers",
            params={"access_token": access_token},
        )
        entries = data.get("data") or []
        try:
            if not isinstance(entries, list):
                raise TypeError("phone number list is not an array")
            numbers = [PhoneNumberInfo.from_api(item) for item in entries]
        except (KeyError, TypeError) as e:
            logger.error("graph_api_malformed_phone_numbers", waba_id=waba_id)
            raise ExternalServiceError("Failed to get phone numbers") from e
        logger.info("phone_numbers_retrieved", waba_id=waba_id, count=len(numbers))
        return numbers

    async def subscribe_app(self, waba_id: str, access_token: str) -> None:
        """Subscribe this app to the WABA's webhooks."""
        await self._request(
            "POST",
            f"/{waba_id}/subscribed_apps",
            "Failed to subscribe to webhooks",
            json={},
            access_token=access_token,
        )
        logger.info("webhooks_subscribed", waba_id=waba_id)

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    async def send_text_message(
        self,
        phone_number_id: str,
        to: str,
        body: str,
        access_token: str,
    ) -> Dict[str, Any]:
        """Send a plain text message; ``to`` must already be normalised."""
        try:
            return await self._request(
                "POST",
                f"/{phone_number_id}/messages",
                "Failed to send message",
                json={
                    "messaging_product": "whatsapp",
                    "recipient_type": "individual",
                    "to": to,
                    "type": "text",
                    "text": {"preview_url": False, "body": body},
                },
                access_token=access_token,
            )
        except ExternalServiceError as e:
            if e.upstream_message:
                raise ExternalServiceError(
                    f"Failed to send message: {e.upstream_message}",
                    status_code=e.status_code,
                    upstream_message=e.upstream_message,
                ) from e
            raise


__all__ = ["GraphAPIConfig", "WhatsAppGraphClient"]
