"""
LINE Messaging API providers (multicast and push).

Both endpoints answer 200 with an empty JSON object on success and a
JSON error body ({"message": ..., "details": [...]}) otherwise.
"""

import logging
from abc import abstractmethod
from typing import List, Optional

import httpx

from segment_blast.core.config import settings
from segment_blast.services.http_client import get_http_client
from segment_blast.services.line_providers.base import (
    LineProvider,
    ProviderType,
    SendResult,
)

logger = logging.getLogger(__name__)

# LINE multicast limit per request
MULTICAST_MAX_RECIPIENTS = 500


class _MessagingApiProvider(LineProvider):
    """Shared HTTP handling for the Messaging API endpoints."""

    endpoint: str

    def __init__(
        self,
        access_token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token
        self.base_url = (base_url or settings.LINE_API_URL).rstrip("/")
        self.timeout = timeout or settings.LINE_TIMEOUT_SECONDS

    @property
    def url(self) -> str:
        """Endpoint URL."""
        return f"{self.base_url}/{self.endpoint}"

    def _headers(self, retry_key: Optional[str]) -> dict:
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        if retry_key:
            headers["X-Line-Retry-Key"] = retry_key
        return headers

    @abstractmethod
    def _build_payload(self, user_ids: List[str], messages: List[dict]) -> dict:
        """Request body for one call."""
        pass

    async def send(
        self,
        user_ids: List[str],
        messages: List[dict],
        retry_key: Optional[str] = None,
    ) -> SendResult:
        """
        Posts one request to the endpoint.

        Args:
            user_ids: Recipients (len <= max_recipients)
            messages: Rendered LINE message objects
            retry_key: Optional X-Line-Retry-Key

        Returns:
            SendResult; never raises for transport or API errors
        """
        if not user_ids:
            return SendResult(success=False, error="no recipients", provider=self.provider_type.value)
        if len(user_ids) > self.max_recipients:
            return SendResult(
                success=False,
                error=f"too many recipients: {len(user_ids)} > {self.max_recipients}",
                provider=self.provider_type.value,
            )

        try:
            client = await get_http_client()
            response = await client.post(
                self.url,
                headers=self._headers(retry_key),
                json=self._build_payload(user_ids, messages),
                timeout=self.timeout,
            )
            response.raise_for_status()

            body = response.json()
            if not isinstance(body, dict):
                raise ValueError(f"unexpected response body: {str(body)[:200]}")

            return SendResult(
                success=True,
                status_code=response.status_code,
                request_id=response.headers.get("x-line-request-id"),
                provider=self.provider_type.value,
            )

        except Exception as e:
            error_msg = self._extract_error(e)
            logger.warning(f"[LINE {self.provider_type.value}] send failed for {len(user_ids)} recipients: {error_msg}")
            status_code = None
            if isinstance(e, httpx.HTTPStatusError):
                status_code = e.response.status_code
            return SendResult(
                success=False,
                error=error_msg,
                status_code=status_code,
                provider=self.provider_type.value,
            )

    def _extract_error(self, exc: Exception) -> str:
        """Builds a short error text from httpx/JSON exceptions."""
        if isinstance(exc, httpx.HTTPStatusError):
            return (
                f"LINE {self.endpoint} failed: "
                f"{exc.response.status_code} {exc.response.text[:300]}"
            )
        if isinstance(exc, httpx.TimeoutException):
            return "line_timeout"
        if isinstance(exc, httpx.ConnectError):
            return "line_connect_error"
        if isinstance(exc, ValueError):
            return f"line_malformed_response: {exc}"
        return str(exc) or exc.__class__.__name__


class MulticastProvider(_MessagingApiProvider):
    """Multicast: same messages to up to 500 user ids per call."""

    provider_type = ProviderType.MULTICAST
    max_recipients = MULTICAST_MAX_RECIPIENTS
    endpoint = "multicast"

    def _build_payload(self, user_ids: List[str], messages: List[dict]) -> dict:
        return {"to": list(user_ids), "messages": messages}


class PushProvider(_MessagingApiProvider):
    """Push: one user id per call (personalized payloads)."""

    provider_type = ProviderType.PUSH
    max_recipients = 1
    endpoint = "push"

    def _build_payload(self, user_ids: List[str], messages: List[dict]) -> dict:
        return {"to": user_ids[0], "messages": messages}
