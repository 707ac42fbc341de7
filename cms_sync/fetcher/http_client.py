"""Async HTTP client wrapper with timeout cancellation and retries."""

import asyncio
import time
from typing import Any, Dict, Optional

import httpx

from cms_sync.errors import CMSNetworkError, CMSTimeoutError
from cms_sync.fetcher.retry_handler import RetryHandler
from cms_sync.monitoring.logger import StructuredLogger


class AsyncHTTPClient:
    """
    Async HTTP client wrapper around httpx.AsyncClient.

    Provides:
    - Per-request timeout enforced by cancelling the in-flight call
    - Bounded exponential-backoff retry via RetryHandler
    - Context manager for proper lifecycle management
    """

    def __init__(
        self,
        timeout: float = 10.0,
        retry_handler: Optional[RetryHandler] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize HTTP client.

        Args:
            timeout: Per-request timeout in seconds
            retry_handler: Retry policy for fetch_with_retry (defaults to 3 retries)
            transport: Optional httpx transport (mock or ASGI transports in tests)
            logger: Optional structured logger for request telemetry
        """
        self.timeout = timeout
        self.retry_handler = retry_handler or RetryHandler()
        self.transport = transport
        self.logger = logger
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Enter async context manager."""
        # Cancellation below is the authoritative timeout; httpx gets a
        # slightly larger one so it never fires first.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout + 1.0),
            transport=self.transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_with_timeout(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """
        Perform a single GET request, cancelled after ``timeout`` seconds.

        Args:
            url: URL to request
            headers: Request headers
            params: Query parameters

        Returns:
            HTTP response (any status code)

        Raises:
            CMSTimeoutError: If the request exceeded the timeout
            CMSNetworkError: On any other transport failure
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.get(url, headers=headers, params=params),
                timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            if self.logger:
                self.logger.cms_request(url, None, (time.perf_counter() - start) * 1000)
            raise CMSTimeoutError(self.timeout) from e
        except httpx.HTTPError as e:
            if self.logger:
                self.logger.cms_request(url, None, (time.perf_counter() - start) * 1000)
            raise CMSNetworkError(str(e) or e.__class__.__name__) from e

        if self.logger:
            self.logger.cms_request(url, response.status_code, (time.perf_counter() - start) * 1000)
        return response

    async def fetch_with_retry(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> httpx.Response:
        """
        Perform a GET request with retries and exponential backoff.

        Raises:
            CMSRequestError: The last failure once all attempts are exhausted
        """
        return await self.retry_handler.execute(
            lambda: self.fetch_with_timeout(url, headers=headers, params=params)
        )
