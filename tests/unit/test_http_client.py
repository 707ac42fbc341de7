"""Unit tests for HTTP client wrapper."""

import asyncio

import httpx
import pytest

from cms_sync.errors import CMSNetworkError, CMSTimeoutError
from cms_sync.fetcher.http_client import AsyncHTTPClient
from cms_sync.fetcher.retry_handler import RetryHandler


class TestAsyncHTTPClient:

    @pytest.mark.asyncio
    async def test_context_manager_lifecycle(self):
        client = AsyncHTTPClient()

        async with client:
            assert client._client is not None

        assert client._client is None

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = AsyncHTTPClient()

        with pytest.raises(RuntimeError, match="not initialized"):
            await client.fetch_with_timeout("http://test.com/api")

    @pytest.mark.asyncio
    async def test_get_request_with_headers_and_params(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer key"
            assert request.url.params["category"] == "Desks"
            return httpx.Response(200, json={"status": "ok"})

        async with AsyncHTTPClient(transport=httpx.MockTransport(handler)) as client:
            response = await client.fetch_with_timeout(
                "http://test.com/api",
                headers={"Authorization": "Bearer key"},
                params={"category": "Desks"},
            )

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_error_statuses_are_returned_not_raised(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))

        async with AsyncHTTPClient(transport=transport) as client:
            response = await client.fetch_with_timeout("http://test.com/api")

        assert response.status_code == 500

    @pytest.mark.asyncio
    async def test_slow_request_is_cancelled(self):
        async def handler(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200)

        async with AsyncHTTPClient(timeout=0.05, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CMSTimeoutError, match="Request timeout after 50ms"):
                await client.fetch_with_timeout("http://test.com/slow")

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with AsyncHTTPClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CMSNetworkError, match="connection refused"):
                await client.fetch_with_timeout("http://test.com/api")

    @pytest.mark.asyncio
    async def test_fetch_with_retry_recovers(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("flaky", request=request)
            return httpx.Response(200, json=[])

        client = AsyncHTTPClient(
            retry_handler=RetryHandler(max_retries=2),
            transport=httpx.MockTransport(handler),
        )
        async with client:
            response = await client.fetch_with_retry("http://test.com/products")

        assert response.status_code == 200
        assert len(calls) == 3
