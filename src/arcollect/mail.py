"""Transactional email delivery through the Resend HTTP API."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from arcollect.config import get_settings

logger = structlog.get_logger(__name__)


class EmailDeliveryError(Exception):
    """Email could not be delivered after all attempts."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _is_retryable(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class ResendClient:
    """Sends HTML email, retrying transient failures with exponential backoff."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        max_retries: int | None = None,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        settings = get_settings()
        if api_key is None and settings.resend_api_key is not None:
            api_key = settings.resend_api_key.get_secret_value()
        if not api_key:
            raise EmailDeliveryError("RESEND_API_KEY is not configured")

        self._api_key = api_key
        self._api_url = (api_url or settings.resend_api_url).rstrip("/")
        self._max_retries = settings.email_max_retries if max_retries is None else max_retries
        self._timeout = timeout
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_url, timeout=httpx.Timeout(self._timeout)
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ResendClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def send(
        self,
        from_: str,
        to: str | list[str],
        subject: str,
        html: str,
        reply_to: str | None = None,
    ) -> dict[str, Any]:
        """Send one email and return the provider's response.

        Retries 5xx, 429 and network errors up to ``max_retries`` attempts,
        waiting 1s, 2s, 4s between them. Other 4xx responses are final.

        Raises:
            EmailDeliveryError: When the last attempt fails.
        """
        payload: dict[str, Any] = {
            "from": from_,
            "to": [to] if isinstance(to, str) else to,
            "subject": subject,
            "html": html,
        }
        if reply_to:
            payload["reply_to"] = reply_to

        client = await self._get_client()
        headers = {"Authorization": f"Bearer {self._api_key}"}
        last_error = "no attempts made"
        last_status: int | None = None

        for attempt in range(1, self._max_retries + 1):
            delay = 2 ** (attempt - 1)
            try:
                response = await client.post("/emails", json=payload, headers=headers)
            except httpx.RequestError as e:
                last_error, last_status = str(e), None
                logger.warning("email_network_error", attempt=attempt, error=last_error)
                if attempt < self._max_retries:
                    await self._sleep(delay)
                continue

            if response.is_success:
                logger.info("email_sent", to=payload["to"], attempt=attempt)
                return response.json() if response.content else {}

            last_error = f"HTTP {response.status_code}: {response.text[:500]}"
            last_status = response.status_code
            logger.warning(
                "email_send_failed", attempt=attempt, status=response.status_code
            )
            if not _is_retryable(response.status_code):
                break
            if attempt < self._max_retries:
                await self._sleep(delay)

        logger.error("email_delivery_failed", to=payload["to"], error=last_error)
        raise EmailDeliveryError(last_error, status_code=last_status)
