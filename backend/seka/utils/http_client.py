"""Async HTTP client with retry logic.

httpx + tenacity for calls to upstream services (game session service).

Only transport-level failures (timeouts, connection errors) are retried;
HTTP error statuses are raised to the caller immediately.
"""

import logging
from typing import Any

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)


DEFAULT_MAX_RETRIES = 3
DEFAULT_MIN_WAIT = 0.2  # seconds
DEFAULT_MAX_WAIT = 2  # seconds


class AsyncHttpClient:
    """Async HTTP client bound to one upstream base URL.

    Usage:
        async with AsyncHttpClient("http://games:3001/api") as client:
            data = await client.post_json("/games", {"label": "t-1"})
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        connect_timeout: float = 5.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HTTP client.

        Args:
            base_url: Prefix for relative request URLs
            timeout: Total request timeout in seconds
            connect_timeout: Connection timeout in seconds
            headers: Default headers sent with every request
            transport: Custom transport (tests use httpx.MockTransport)
        """
        self._base_url = base_url
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._headers = headers or {}
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncHttpClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the underlying httpx client."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' or open().")
        return self._client

    @retry(
        stop=stop_after_attempt(DEFAULT_MAX_RETRIES),
        wait=wait_exponential(multiplier=DEFAULT_MIN_WAIT, min=DEFAULT_MIN_WAIT, max=DEFAULT_MAX_WAIT),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def post(self, url: str, **kwargs) -> httpx.Response:
        """POST request with retry on transport errors."""
        response = await self.client.post(url, **kwargs)
        response.raise_for_status()
        return response

    async def post_json(self, url: str, data: dict[str, Any], **kwargs) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        response = await self.post(url, json=data, **kwargs)
        return response.json()
