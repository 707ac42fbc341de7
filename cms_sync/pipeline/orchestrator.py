"""Orchestrator wiring the CMS client, sync engine and fallback service."""

import asyncio
from typing import Any, Dict, Optional

import httpx

from cms_sync.client import CMSClient
from cms_sync.fallback import CMSFallbackService
from cms_sync.fetcher.circuit_breaker import CircuitBreaker
from cms_sync.models.config import AppConfig
from cms_sync.models.data_models import (
    ProductFilters,
    ProductsResult,
    SyncOptions,
    SyncResult,
    SyncStatusInfo,
)
from cms_sync.monitoring.logger import StructuredLogger
from cms_sync.sync import (
    InMemoryProductStore,
    InMemorySyncStatusStore,
    ProductStore,
    ProductSyncService,
    SyncStatusStore,
)


class SyncOrchestrator:
    """Builds every component from one AppConfig and runs the top-level flows."""

    def __init__(
        self,
        config: AppConfig,
        product_store: Optional[ProductStore] = None,
        status_store: Optional[SyncStatusStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize orchestrator with service configuration.

        Args:
            config: Service configuration object
            product_store: Local product store (in-memory if omitted)
            status_store: Sync status store (in-memory if omitted)
            transport: Optional httpx transport for the CMS client
        """
        self.config = config
        self.logger = StructuredLogger(level=config.log_level)
        self.product_store = product_store if product_store is not None else InMemoryProductStore()
        self.status_store = status_store if status_store is not None else InMemorySyncStatusStore()
        self.cms_client = CMSClient(config.cms, transport=transport, logger=self.logger)
        self.sync_service = ProductSyncService(
            self.cms_client,
            self.product_store,
            history_size=config.sync_history_size,
            default_batch_size=config.sync_batch_size,
            logger=self.logger,
        )
        self.fallback_service = CMSFallbackService(
            self.cms_client,
            self.product_store,
            self.status_store,
            strategy=config.fallback_strategy,
            circuit_breaker=CircuitBreaker(
                failure_threshold=config.circuit_breaker_threshold,
                recovery_timeout=config.circuit_breaker_recovery,
                logger=self.logger,
            ),
            cache_ttl=config.fallback_cache_ttl,
            logger=self.logger,
        )

    async def __aenter__(self) -> "SyncOrchestrator":
        await self.cms_client.__aenter__()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.cms_client.__aexit__(exc_type, exc_val, exc_tb)

    async def check_connection(self) -> Dict[str, Any]:
        """Connection test, health check and a redacted view of the config."""
        connection = await self.cms_client.test_connection()
        health = await self.cms_client.get_health_status()
        return {
            "connection": connection,
            "health": health,
            "config": self.config.cms.redacted(),
        }

    async def run_sync(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """
        Trigger a sync and record its outcome in the sync status store.

        Enforces total_timeout from configuration.

        Raises:
            SyncInProgressError: If a run is already active
            asyncio.TimeoutError: If the run exceeds total_timeout
        """
        options = options or SyncOptions()
        try:
            result = await asyncio.wait_for(
                self.sync_service.trigger_sync(options),
                timeout=self.config.total_timeout
            )
        except asyncio.TimeoutError:
            self.logger.log("sync_timeout", timeout=self.config.total_timeout)
            await self.fallback_service.update_sync_status(
                False, f"Sync timed out after {self.config.total_timeout}s"
            )
            raise

        await self.fallback_service.update_sync_status(
            result.success, "; ".join(result.error_messages) or None
        )
        return result

    async def sync_status(self) -> SyncStatusInfo:
        return await self.fallback_service.get_sync_status()

    async def list_products(self, filters: Optional[ProductFilters] = None) -> ProductsResult:
        """Serve products through the fallback chain."""
        return await self.fallback_service.get_products(filters)
