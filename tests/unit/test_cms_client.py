"""Unit tests for CMSClient."""

import asyncio

import httpx
import pytest

from conftest import mock_transport

from cms_sync.client import CMSClient
from cms_sync.errors import CMSConfigurationError, CMSFetchError
from cms_sync.models.config import CMSConfig
from cms_sync.models.data_models import ConnectionStatus, ProductFilters


def json_transport(routes):
    """MockTransport answering by path; a callable value receives the request."""
    calls = []

    def handler(request):
        calls.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        if callable(route):
            return route(request)
        # Fresh response per request; httpx consumes the stream
        return httpx.Response(route.status_code, content=route.content, headers=route.headers)

    transport = httpx.MockTransport(handler)
    transport.calls = calls
    return transport


class TestConfiguration:

    def test_accepts_mapping(self):
        client = CMSClient({"api_url": "http://cms.test", "api_key": "k"})
        assert client.get_config().api_url == "http://cms.test"

    def test_invalid_config_raises_synchronously(self):
        with pytest.raises(CMSConfigurationError, match="apiUrl and apiKey are required"):
            CMSClient({"api_url": "", "api_key": ""})

    def test_contentful_without_space_rejected(self):
        with pytest.raises(CMSConfigurationError, match="spaceId is required for Contentful"):
            CMSClient({"provider": "contentful", "api_url": "http://cms.test", "api_key": "k"})

    def test_unvalidated_config_is_revalidated(self):
        broken = CMSConfig.model_construct(api_url="", api_key="")

        with pytest.raises(CMSConfigurationError):
            CMSClient(broken)

    def test_get_config_returns_copy(self, cms_config):
        client = CMSClient(cms_config)

        copy = client.get_config()

        assert copy == cms_config
        assert copy is not client.get_config()


class TestConnection:

    @pytest.mark.asyncio
    async def test_connected(self, cms_config):
        async with CMSClient(cms_config, transport=mock_transport()) as client:
            result = await client.test_connection()

        assert result.success is True
        assert result.status == ConnectionStatus.CONNECTED
        assert result.error is None
        assert result.response_time_ms >= 0

    @pytest.mark.asyncio
    async def test_unauthorized(self, cms_config):
        transport = mock_transport(api_key="other-key")

        async with CMSClient(cms_config, transport=transport) as client:
            result = await client.test_connection()

        assert result.success is False
        assert result.status == ConnectionStatus.UNAUTHORIZED
        assert result.error.startswith("Authentication failed")

    @pytest.mark.asyncio
    async def test_server_error(self, cms_config):
        transport = json_transport({"/health": httpx.Response(500)})

        async with CMSClient(cms_config, transport=transport) as client:
            result = await client.test_connection()

        assert result.status == ConnectionStatus.ERROR
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(request):
            await asyncio.sleep(1.0)
            return httpx.Response(200)

        config = CMSConfig(api_url="http://cms.test", api_key="k", timeout=0.05)
        async with CMSClient(config, transport=httpx.MockTransport(slow)) as client:
            result = await client.test_connection()

        assert result.status == ConnectionStatus.TIMEOUT
        assert result.error == "Connection timeout after 50ms"

    @pytest.mark.asyncio
    async def test_network_failure_never_raises(self, cms_config):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with CMSClient(cms_config, transport=httpx.MockTransport(refuse)) as client:
            result = await client.test_connection()
            health = await client.get_health_status()

        assert result.status == ConnectionStatus.ERROR
        assert "connection refused" in result.error
        assert health.is_healthy is False

    @pytest.mark.asyncio
    async def test_health_status_reports_version(self, cms_config):
        async with CMSClient(cms_config, transport=mock_transport(version="2.4.1")) as client:
            health = await client.get_health_status()

        assert health.is_healthy is True
        assert health.version == "2.4.1"
        assert health.error is None


class TestProducts:

    @pytest.mark.asyncio
    async def test_list_products(self, cms_config):
        async with CMSClient(cms_config, transport=mock_transport()) as client:
            products = await client.get_products()

        assert [p.slug for p in products] == ["desk-1", "desk-2", "lamp-1"]

    @pytest.mark.asyncio
    async def test_list_products_with_filters(self, cms_config):
        async with CMSClient(cms_config, transport=mock_transport()) as client:
            products = await client.get_products(ProductFilters(category="Desks", limit=1))

        assert [p.slug for p in products] == ["desk-1"]

    @pytest.mark.asyncio
    async def test_get_product_by_slug(self, cms_config):
        async with CMSClient(cms_config, transport=mock_transport()) as client:
            product = await client.get_product("lamp-1")

        assert product.name == "Desk Lamp"
        assert product.in_stock is False

    @pytest.mark.asyncio
    async def test_missing_product_is_none(self, cms_config):
        async with CMSClient(cms_config, transport=mock_transport()) as client:
            assert await client.get_product("nope") is None

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, no_sleep):
        attempts = []

        def flaky(request):
            attempts.append(request)
            if len(attempts) <= 2:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(200, json=[{"id": "1", "slug": "a"}])

        config = CMSConfig(api_url="http://cms.test", api_key="k", retry_attempts=2)
        async with CMSClient(config, transport=httpx.MockTransport(flaky)) as client:
            products = await client.get_products()

        assert len(attempts) == 3
        assert no_sleep == [1.0, 2.0]
        assert products[0].slug == "a"

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_fetch_error(self, no_sleep):
        transport = json_transport({"/products": httpx.Response(503)})

        config = CMSConfig(api_url="http://cms.test", api_key="k", retry_attempts=2)
        async with CMSClient(config, transport=transport) as client:
            with pytest.raises(CMSFetchError, match="Failed to fetch products: HTTP 503"):
                await client.get_products()

        assert len(transport.calls) == 3

    @pytest.mark.asyncio
    async def test_single_product_error(self, cms_config):
        transport = json_transport({"/products/desk-1": httpx.Response(400)})

        async with CMSClient(cms_config, transport=transport) as client:
            with pytest.raises(CMSFetchError, match="Failed to fetch product: HTTP 400"):
                await client.get_product("desk-1")

    @pytest.mark.asyncio
    async def test_invalid_json_raises_fetch_error(self, cms_config):
        transport = json_transport({"/products": httpx.Response(200, content=b"<html>")})

        async with CMSClient(cms_config, transport=transport) as client:
            with pytest.raises(CMSFetchError):
                await client.get_products()


class TestCaching:

    @pytest.mark.asyncio
    async def test_cache_serves_repeat_reads(self):
        transport = json_transport({"/products": httpx.Response(200, json=[{"id": "1", "slug": "a"}])})
        config = CMSConfig(api_url="http://cms.test", api_key="k", enable_cache=True)

        async with CMSClient(config, transport=transport) as client:
            first = await client.get_products()
            second = await client.get_products()

        assert first == second
        assert len(transport.calls) == 1

    @pytest.mark.asyncio
    async def test_cache_disabled_by_default(self, cms_config):
        transport = json_transport({"/products": httpx.Response(200, json=[])})

        async with CMSClient(cms_config, transport=transport) as client:
            await client.get_products()
            await client.get_products()

        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_filters_use_distinct_cache_keys(self):
        transport = json_transport({"/products": httpx.Response(200, json=[])})
        config = CMSConfig(api_url="http://cms.test", api_key="k", enable_cache=True)

        async with CMSClient(config, transport=transport) as client:
            await client.get_products(ProductFilters(category="Desks"))
            await client.get_products(ProductFilters(category="Lighting"))
            await client.get_products(ProductFilters(category="Desks"))

        assert len(transport.calls) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self):
        transport = json_transport({"/products/a": httpx.Response(200, json={"id": "1", "slug": "a"})})
        config = CMSConfig(api_url="http://cms.test", api_key="k", enable_cache=True)

        async with CMSClient(config, transport=transport) as client:
            await client.get_product("a")
            client.clear_cache()
            await client.get_product("a")

        assert len(transport.calls) == 2
