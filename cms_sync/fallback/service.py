"""Fallback service serving product data from CMS, cache or local store."""

import copy
from datetime import datetime, timezone
from typing import Optional

from cms_sync.cache import CacheBackend, TTLCache
from cms_sync.client import CMSClient
from cms_sync.fetcher.circuit_breaker import CircuitBreaker, Clock, WallClock
from cms_sync.models.data_models import (
    CircuitBreakerState,
    DataSource,
    Degraded,
    FallbackStrategy,
    Fresh,
    ProductFilters,
    ProductResult,
    ProductsResult,
    SyncStatusInfo,
)
from cms_sync.monitoring.logger import StructuredLogger
from cms_sync.sync.store import Increment, ProductStore, SyncStatusStore
from cms_sync.sync.transform import to_local_record


SECONDS_PER_DAY = 60 * 60 * 24
SYNC_STATUS_ID = 1


def _describe(error: BaseException) -> str:
    return str(error) or error.__class__.__name__


class CMSFallbackService:
    """
    Gives every caller a product answer, ranked by freshness.

    Strategies:
    - CMS_FIRST: CMS, then cache, then local store
    - CACHE_FIRST: cache, then local store; the CMS is never consulted
    - LOCAL_ONLY: local store only

    A circuit breaker skips the CMS entirely after repeated failures. Public
    methods never raise: every failure is folded into a Degraded result or a
    default status record.
    """

    def __init__(
        self,
        cms_client: CMSClient,
        product_store: ProductStore,
        status_store: SyncStatusStore,
        strategy: FallbackStrategy = FallbackStrategy.CMS_FIRST,
        circuit_breaker: Optional[CircuitBreaker] = None,
        cache: Optional[CacheBackend] = None,
        cache_ttl: float = 300.0,
        clock: Optional[Clock] = None,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize the fallback service.

        Args:
            cms_client: Live data source
            product_store: Local product store (populated by sync runs)
            status_store: Persisted sync status store
            strategy: Initial fallback strategy
            circuit_breaker: Breaker guarding CMS calls (5 failures / 60s by default)
            cache: Result cache (defaults to TTLCache)
            cache_ttl: TTL for cached CMS answers in seconds
            clock: Clock used for status age calculations
            logger: Optional structured logger
        """
        self.cms_client = cms_client
        self.product_store = product_store
        self.status_store = status_store
        self.strategy = strategy
        self.clock = clock or WallClock()
        self.circuit_breaker = circuit_breaker or CircuitBreaker(clock=self.clock, logger=logger)
        self.cache = cache or TTLCache(clock=self.clock)
        self.cache_ttl = cache_ttl
        self.logger = logger

    async def get_products(self, filters: Optional[ProductFilters] = None) -> ProductsResult:
        """Product list with source and staleness metadata. Never raises."""
        filters = filters or ProductFilters()
        cache_key = filters.cache_key("products")
        try:
            if self._cms_blocked():
                result = await self._products_from_local(filters, cache_key, "Circuit breaker is open")
            elif self.strategy is FallbackStrategy.LOCAL_ONLY:
                result = await self._products_from_local(filters, cache_key, allow_cache=False)
            elif self.strategy is FallbackStrategy.CACHE_FIRST:
                result = await self._products_cache_first(filters, cache_key)
            else:
                result = await self._products_cms_first(filters, cache_key)
        except Exception as e:
            result = Degraded(
                data=[],
                source=DataSource.NONE,
                error=f"Fallback service error: {_describe(e)}",
                circuit_breaker_open=self.circuit_breaker.is_open,
            )
        self._log_served(result)
        return result

    async def get_product(self, slug: str) -> ProductResult:
        """Single product with source and staleness metadata. Never raises."""
        cache_key = f"product_{slug}"
        try:
            if self._cms_blocked():
                result = await self._product_from_local(slug, cache_key, "Circuit breaker is open")
            elif self.strategy is FallbackStrategy.LOCAL_ONLY:
                result = await self._product_from_local(slug, cache_key, allow_cache=False)
            elif self.strategy is FallbackStrategy.CACHE_FIRST:
                cached = self._cached(cache_key)
                if cached is not None:
                    result = self._degraded(cached, DataSource.CACHE)
                else:
                    result = await self._product_from_local(slug, cache_key)
            else:
                result = await self._product_cms_first(slug, cache_key)
        except Exception as e:
            result = Degraded(
                data=None,
                source=DataSource.NONE,
                error=f"Product fallback error: {_describe(e)}",
                circuit_breaker_open=self.circuit_breaker.is_open,
            )
        self._log_served(result)
        return result

    async def _products_cms_first(self, filters: ProductFilters, cache_key: str) -> ProductsResult:
        try:
            cms_products = await self.cms_client.get_products(filters)
        except Exception as e:
            self.circuit_breaker.record_failure()
            error = f"CMS unavailable: {_describe(e)}"
            cached = self._cached(cache_key)
            if cached is not None:
                return self._degraded(cached, DataSource.CACHE, error)
            return await self._products_from_local(filters, cache_key, error)

        products = [to_local_record(p) for p in cms_products]
        self._remember(cache_key, products)
        self.circuit_breaker.record_success()
        return Fresh(data=products)

    async def _products_cache_first(self, filters: ProductFilters, cache_key: str) -> ProductsResult:
        cached = self._cached(cache_key)
        if cached is not None:
            return self._degraded(cached, DataSource.CACHE)
        return await self._products_from_local(filters, cache_key)

    async def _products_from_local(
        self,
        filters: ProductFilters,
        cache_key: str,
        error: Optional[str] = None,
        allow_cache: bool = True
    ) -> ProductsResult:
        where = {"category": filters.category} if filters.category else None
        try:
            products = await self.product_store.find_many(
                where=where,
                skip=filters.offset,
                take=filters.limit,
                order_by={"created_at": "desc"},
            )
        except Exception as db_error:
            if self.logger:
                self.logger.store_error("find_many", _describe(db_error))
            # Last resort: whatever the cache still holds
            cached = self._cached(cache_key) if allow_cache else None
            if cached is not None:
                return self._degraded(
                    cached,
                    DataSource.CACHE,
                    "Both CMS and local data unavailable. Using stale cache.",
                )
            return self._degraded(
                [],
                DataSource.NONE,
                f"Both CMS and local data unavailable: {_describe(db_error)}",
            )
        return self._degraded(list(products), DataSource.LOCAL, error)

    async def _product_cms_first(self, slug: str, cache_key: str) -> ProductResult:
        error = None
        try:
            cms_product = await self.cms_client.get_product(slug)
        except Exception as e:
            self.circuit_breaker.record_failure()
            error = f"CMS unavailable: {_describe(e)}"
        else:
            self.circuit_breaker.record_success()
            if cms_product is not None:
                product = to_local_record(cms_product)
                self._remember(cache_key, product)
                return Fresh(data=product)

        cached = self._cached(cache_key)
        if cached is not None:
            return self._degraded(cached, DataSource.CACHE, error)
        return await self._product_from_local(slug, cache_key, error)

    async def _product_from_local(
        self,
        slug: str,
        cache_key: str,
        error: Optional[str] = None,
        allow_cache: bool = True
    ) -> ProductResult:
        try:
            product = await self.product_store.find_unique(slug)
        except Exception as db_error:
            if self.logger:
                self.logger.store_error("find_unique", _describe(db_error))
            cached = self._cached(cache_key) if allow_cache else None
            if cached is not None:
                return self._degraded(
                    cached,
                    DataSource.CACHE,
                    "Both CMS and local data unavailable. Using stale cache.",
                )
            return self._degraded(None, DataSource.NONE, f"Database error: {_describe(db_error)}")

        source = DataSource.LOCAL if product is not None else DataSource.NONE
        return self._degraded(product, source, error)

    def _cms_blocked(self) -> bool:
        # Only a call that goes on to reach the CMS may take the half-open slot
        if self.strategy is FallbackStrategy.CMS_FIRST:
            return not self.circuit_breaker.allow_request()
        return self.circuit_breaker.is_open

    def _remember(self, cache_key: str, data) -> None:
        # Callers own what they receive; the cache keeps its own copy
        self.cache.put(cache_key, copy.deepcopy(data), self.cache_ttl)

    def _cached(self, cache_key: str):
        cached = self.cache.get(cache_key)
        return copy.deepcopy(cached) if cached is not None else None

    def _degraded(self, data, source: DataSource, error: Optional[str] = None) -> Degraded:
        return Degraded(
            data=data,
            source=source,
            error=error,
            circuit_breaker_open=self.circuit_breaker.is_open,
        )

    def _log_served(self, result) -> None:
        if self.logger:
            self.logger.fallback_served(result.source.value, self.strategy.value, result.is_stale, result.error)

    async def get_sync_status(self) -> SyncStatusInfo:
        """Persisted sync health merged with the live breaker flag. Never raises."""
        breaker_open = self.circuit_breaker.is_open
        try:
            record = await self.status_store.find_first(order_by={"last_attempted_sync": "desc"})
        except Exception as e:
            if self.logger:
                self.logger.store_error("find_first", _describe(e))
            return SyncStatusInfo(
                is_healthy=False,
                last_successful_sync=None,
                last_attempted_sync=None,
                error_count=0,
                last_error=f"Error retrieving sync status: {_describe(e)}",
                days_since_last_sync=float("inf"),
                circuit_breaker_open=breaker_open,
            )

        if record is None:
            return SyncStatusInfo(
                is_healthy=False,
                last_successful_sync=None,
                last_attempted_sync=None,
                error_count=0,
                last_error="No sync history found",
                days_since_last_sync=float("inf"),
                circuit_breaker_open=breaker_open,
            )

        return SyncStatusInfo(
            is_healthy=record.is_healthy,
            last_successful_sync=record.last_successful_sync,
            last_attempted_sync=record.last_attempted_sync,
            error_count=record.error_count,
            last_error=record.last_error,
            days_since_last_sync=self._days_since(record.last_successful_sync),
            circuit_breaker_open=breaker_open,
        )

    def _days_since(self, moment: Optional[datetime]) -> float:
        if moment is None:
            return float("inf")
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return (self.clock.now() - moment.timestamp()) / SECONDS_PER_DAY

    async def update_sync_status(self, success: bool, error: Optional[str] = None) -> None:
        """
        Record a sync attempt.

        Success resets the error count and marks the status healthy; failure
        increments the count. The last-attempted timestamp always moves.
        Store failures are logged, never raised.
        """
        now = datetime.fromtimestamp(self.clock.now(), tz=timezone.utc)
        update = {
            "last_attempted_sync": now,
            "is_healthy": success,
            "error_count": 0 if success else Increment(1),
            "last_error": error or None,
        }
        if success:
            update["last_successful_sync"] = now
        try:
            await self.status_store.upsert(
                id=SYNC_STATUS_ID,
                create={
                    "last_attempted_sync": now,
                    "last_successful_sync": now if success else None,
                    "is_healthy": success,
                    "error_count": 0 if success else 1,
                    "last_error": error or None,
                },
                update=update,
            )
        except Exception as e:
            if self.logger:
                self.logger.store_error("update_sync_status", _describe(e))

    def set_fallback_strategy(self, strategy: FallbackStrategy) -> None:
        self.strategy = strategy

    def get_fallback_strategy(self) -> FallbackStrategy:
        return self.strategy

    def get_circuit_breaker_status(self) -> CircuitBreakerState:
        return self.circuit_breaker.snapshot()

    def clear_cache(self) -> None:
        self.cache.clear()

    def reset_circuit_breaker(self) -> None:
        self.circuit_breaker.reset()
