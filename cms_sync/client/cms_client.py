"""CMS client: connection testing, health checks and product reads."""

import time
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import ValidationError

from cms_sync.cache import CacheBackend, TTLCache
from cms_sync.errors import (
    CMSConfigurationError,
    CMSFetchError,
    CMSHTTPError,
    CMSRequestError,
    CMSTimeoutError,
)
from cms_sync.fetcher.http_client import AsyncHTTPClient
from cms_sync.fetcher.retry_handler import RetryHandler
from cms_sync.models.config import CMSConfig
from cms_sync.models.data_models import (
    CanonicalProduct,
    ConnectionResult,
    ConnectionStatus,
    HealthStatus,
    ProductFilters,
    utc_now,
)
from cms_sync.monitoring.logger import StructuredLogger
from cms_sync.providers import ProviderAdapter, get_adapter


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class CMSClient:
    """
    Public entry point for talking to a CMS backend.

    The client composes a provider adapter (URLs, headers, wire transforms)
    with the resilient HTTP client (timeouts, retries). ``test_connection``
    and ``get_health_status`` never raise; product reads raise CMSFetchError
    once retries are exhausted.

    Use as an async context manager so the underlying connection pool is
    opened and closed deterministically::

        async with CMSClient(config) as client:
            products = await client.get_products()
    """

    def __init__(
        self,
        config: Union[CMSConfig, Dict[str, Any]],
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[CacheBackend] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize the client.

        Args:
            config: CMSConfig, or a mapping validated into one
            transport: Optional httpx transport (mock/ASGI transports in tests)
            cache: Cache backend for list/get results (defaults to TTLCache)
            logger: Optional structured logger

        Raises:
            CMSConfigurationError: If the configuration is invalid
        """
        self._config = self._validate_config(config)
        self.logger = logger
        self.adapter: ProviderAdapter = get_adapter(self._config)
        self.cache = cache or TTLCache()
        self.http = AsyncHTTPClient(
            timeout=self._config.timeout,
            retry_handler=RetryHandler(
                max_retries=self._config.retry_attempts,
                on_retry=self._log_retry,
            ),
            transport=transport,
            logger=logger,
        )

    @staticmethod
    def _validate_config(config: Union[CMSConfig, Dict[str, Any]]) -> CMSConfig:
        if isinstance(config, CMSConfig):
            # Re-validate: model_construct() bypasses validators
            config = config.model_dump()
        try:
            return CMSConfig.model_validate(config)
        except ValidationError as e:
            messages = "; ".join(error["msg"] for error in e.errors())
            raise CMSConfigurationError(messages) from e

    async def __aenter__(self) -> "CMSClient":
        await self.http.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.http.__aexit__(exc_type, exc_val, exc_tb)

    async def aclose(self) -> None:
        await self.http.aclose()

    def get_config(self) -> CMSConfig:
        """Return a copy of the configuration; the live config cannot be changed through it."""
        return self._config.model_copy(deep=True)

    async def test_connection(self) -> ConnectionResult:
        """
        Perform one health-check call and classify the outcome.

        Returns:
            ConnectionResult tagged connected, unauthorized (401/403),
            timeout or error. Never raises.
        """
        start = time.perf_counter()
        try:
            response = await self.http.fetch_with_timeout(
                self.adapter.health_check_url(),
                headers=self.adapter.auth_headers()
            )
        except CMSTimeoutError:
            return ConnectionResult(
                success=False,
                status=ConnectionStatus.TIMEOUT,
                error=f"Connection timeout after {int(self._config.timeout * 1000)}ms",
                response_time_ms=_elapsed_ms(start),
            )
        except Exception as e:
            return ConnectionResult(
                success=False,
                status=ConnectionStatus.ERROR,
                error=str(e) or "Unknown connection error",
                response_time_ms=_elapsed_ms(start),
            )

        response_time = _elapsed_ms(start)
        if response.status_code in (401, 403):
            return ConnectionResult(
                success=False,
                status=ConnectionStatus.UNAUTHORIZED,
                error="Authentication failed: Invalid API key or insufficient permissions",
                response_time_ms=response_time,
            )
        if not response.is_success:
            return ConnectionResult(
                success=False,
                status=ConnectionStatus.ERROR,
                error=str(CMSHTTPError(response.status_code, response.reason_phrase)),
                response_time_ms=response_time,
            )
        return ConnectionResult(success=True, status=ConnectionStatus.CONNECTED, response_time_ms=response_time)

    async def get_health_status(self) -> HealthStatus:
        """Boolean health record with the reported version, if any. Never raises."""
        start = time.perf_counter()
        try:
            response = await self.http.fetch_with_timeout(
                self.adapter.health_check_url(),
                headers=self.adapter.auth_headers()
            )
        except Exception as e:
            return HealthStatus(
                is_healthy=False,
                response_time_ms=_elapsed_ms(start),
                last_checked=utc_now(),
                error=str(e) or "Unknown error",
            )

        response_time = _elapsed_ms(start)
        if not response.is_success:
            return HealthStatus(
                is_healthy=False,
                response_time_ms=response_time,
                last_checked=utc_now(),
                error=str(CMSHTTPError(response.status_code, response.reason_phrase)),
            )

        try:
            version = self.adapter.health_version(response.json())
        except ValueError:
            # Health endpoints may answer with an empty or non-JSON body
            version = None
        return HealthStatus(
            is_healthy=True,
            response_time_ms=response_time,
            last_checked=utc_now(),
            version=version,
        )

    async def get_products(self, filters: Optional[ProductFilters] = None) -> List[CanonicalProduct]:
        """
        List canonical products, consulting the cache first when enabled.

        Raises:
            CMSFetchError: ``"Failed to fetch products: <cause>"`` after retries
        """
        filters = filters or ProductFilters()
        cache_key = filters.cache_key("products")
        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        try:
            response = await self.http.fetch_with_retry(
                self.adapter.products_url(filters),
                headers=self.adapter.auth_headers()
            )
            if not response.is_success:
                raise CMSHTTPError(response.status_code, response.reason_phrase)
            products = self.adapter.transform_products(response.json())
        except (CMSRequestError, ValueError) as e:
            if self.logger:
                self.logger.cms_error("get_products", str(e))
            raise CMSFetchError(f"Failed to fetch products: {e}") from e

        self._cache_put(cache_key, products)
        return products

    async def get_product(self, slug: str) -> Optional[CanonicalProduct]:
        """
        Fetch one product by slug.

        Returns:
            The product, or None when the CMS answers 404

        Raises:
            CMSFetchError: ``"Failed to fetch product: <cause>"`` after retries
        """
        cache_key = f"product_{slug}"
        cached = self._cache_get(cache_key)
        if cached is not None:
            return cached

        try:
            response = await self.http.fetch_with_retry(
                self.adapter.product_url(slug),
                headers=self.adapter.auth_headers()
            )
            if response.status_code == 404:
                return None
            if not response.is_success:
                raise CMSHTTPError(response.status_code, response.reason_phrase)
            product = self.adapter.transform_product(response.json())
        except (CMSRequestError, ValueError) as e:
            if self.logger:
                self.logger.cms_error("get_product", str(e))
            raise CMSFetchError(f"Failed to fetch product: {e}") from e

        if product is not None:
            self._cache_put(cache_key, product)
        return product

    def clear_cache(self) -> None:
        self.cache.clear()

    def _cache_get(self, key: str) -> Optional[Any]:
        if not self._config.enable_cache:
            return None
        cached = self.cache.get(key)
        if cached is not None and self.logger:
            self.logger.cache_hit(key)
        return cached

    def _cache_put(self, key: str, value: Any) -> None:
        if self._config.enable_cache:
            self.cache.put(key, value, self._config.cache_ttl)

    def _log_retry(self, attempt: int, delay: float, reason: str) -> None:
        if self.logger:
            self.logger.cms_retry(self._config.api_url, attempt, delay, reason)
