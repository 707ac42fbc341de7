"""Synchronization engine reconciling the remote CMS catalog into the local store."""

import time
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Deque, Dict, List, Optional, Sequence

from cms_sync.client import CMSClient
from cms_sync.errors import SyncInProgressError
from cms_sync.models.data_models import (
    CanonicalProduct,
    ImageOptimizationOptions,
    LocalProductRecord,
    ProductFilters,
    SyncError,
    SyncOperation,
    SyncOptions,
    SyncProgress,
    SyncResult,
    SyncStep,
    utc_now,
)
from cms_sync.monitoring.logger import StructuredLogger
from cms_sync.sync import transform
from cms_sync.sync.store import ProductStore


@dataclass
class _Tally:
    """Mutable counters for one run; frozen into a SyncResult at the end."""
    added: int = 0
    updated: int = 0
    removed: int = 0
    errors: List[SyncError] = field(default_factory=list)


def chunk(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    """Split items into consecutive chunks of at most ``size``."""
    return [items[i:i + size] for i in range(0, len(items), size)]


class ProductSyncService:
    """
    Pulls the remote catalog and reconciles it into the local product store.

    A run moves through idle → fetching-remote → loading-local →
    processing-batches [→ handling-removals] → completed | error. Only one
    run may be active per instance; the guard is an in-process flag.

    Failure semantics: if the remote fetch fails the run ends with
    ``success=False`` and nothing is written. Individual upsert/delete
    failures are recorded in the result and the run carries on.
    """

    def __init__(
        self,
        cms_client: CMSClient,
        product_store: ProductStore,
        history_size: int = 50,
        default_batch_size: int = 10,
        logger: Optional[StructuredLogger] = None
    ):
        """
        Initialize the sync service.

        Args:
            cms_client: Client used to pull remote products
            product_store: Local store receiving upserts/deletes
            history_size: Number of past SyncResults kept
            default_batch_size: Batch size when options don't specify one
            logger: Optional structured logger
        """
        self.cms_client = cms_client
        self.product_store = product_store
        self.default_batch_size = default_batch_size
        self.logger = logger
        self._status = SyncProgress()
        self._history: Deque[SyncResult] = deque(maxlen=history_size)

    async def sync_products(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """
        Run one synchronization.

        Args:
            options: Category filter, dry-run, batch size and force-update flags

        Returns:
            SyncResult; ``success`` is False only when the remote fetch failed

        Raises:
            SyncInProgressError: If another run is active
        """
        if self._status.is_running:
            raise SyncInProgressError()

        options = options or SyncOptions()
        start = time.perf_counter()
        tally = _Tally()
        self._set_status(
            is_running=True,
            progress=0,
            current_step=SyncStep.FETCHING_REMOTE,
            step_detail="Fetching products from CMS",
            started_at=utc_now(),
        )
        if self.logger:
            self.logger.sync_start(options.category, options.dry_run, options.force_update)

        try:
            try:
                remote_products = await self.cms_client.get_products(
                    ProductFilters(category=options.category) if options.category else None
                )
            except Exception as e:
                tally.errors.append(SyncError(operation=SyncOperation.FETCH, cause=str(e)))
                self._set_status(is_running=False, progress=0, current_step=SyncStep.ERROR, step_detail=str(e))
                return self._finish(False, tally, start)

            if remote_products:
                await self._reconcile(remote_products, options, tally)

            self._set_status(is_running=False, progress=100, current_step=SyncStep.COMPLETED, step_detail=None)
            return self._finish(True, tally, start)
        finally:
            if self._status.is_running:
                # Unexpected exception escaped; never leave the guard set
                self._set_status(is_running=False, current_step=SyncStep.ERROR)

    async def _reconcile(
        self,
        remote_products: List[CanonicalProduct],
        options: SyncOptions,
        tally: _Tally
    ) -> None:
        self._set_status(progress=10, current_step=SyncStep.LOADING_LOCAL, step_detail="Loading existing products")
        existing = await self.product_store.find_many()
        existing_by_slug: Dict[str, LocalProductRecord] = {record.slug: record for record in existing}

        batch_size = options.batch_size if options.batch_size and options.batch_size > 0 else self.default_batch_size
        batches = chunk(remote_products, batch_size)
        for index, batch in enumerate(batches, start=1):
            self._set_status(
                progress=20 + (index / len(batches)) * 70,
                current_step=SyncStep.PROCESSING_BATCHES,
                step_detail=f"Processing batch {index} of {len(batches)}",
            )
            if self.logger:
                self.logger.sync_batch(index, len(batches), len(batch))
            await self._process_batch(batch, existing_by_slug, options, tally)

        # Removal detection only makes sense against the full catalog
        if not options.category:
            self._set_status(
                progress=95,
                current_step=SyncStep.HANDLING_REMOVALS,
                step_detail="Checking for removed products",
            )
            await self._handle_removed(remote_products, existing, options, tally)

    async def _process_batch(
        self,
        batch: Sequence[CanonicalProduct],
        existing_by_slug: Dict[str, LocalProductRecord],
        options: SyncOptions,
        tally: _Tally
    ) -> None:
        for product in batch:
            existing = existing_by_slug.get(product.slug)
            try:
                payload = self.transform_cms_product(product)

                if options.dry_run:
                    if existing is None:
                        tally.added += 1
                    elif self.should_update_product(product, existing, options.force_update):
                        tally.updated += 1
                    continue

                await self.product_store.upsert(
                    slug=product.slug,
                    create={**payload, "created_by": "system"},
                    update=payload,
                )
                if existing is None:
                    tally.added += 1
                else:
                    tally.updated += 1
            except Exception as e:
                self._record_error(tally, SyncOperation.UPSERT, product.slug, e)

    async def _handle_removed(
        self,
        remote_products: List[CanonicalProduct],
        existing: List[LocalProductRecord],
        options: SyncOptions,
        tally: _Tally
    ) -> None:
        remote_slugs = {product.slug for product in remote_products}
        for record in existing:
            if record.slug in remote_slugs:
                continue
            try:
                if not options.dry_run:
                    await self.product_store.delete(record.id)
                tally.removed += 1
            except Exception as e:
                self._record_error(tally, SyncOperation.DELETE, record.slug, e)

    def _record_error(self, tally: _Tally, operation: SyncOperation, slug: str, error: Exception) -> None:
        tally.errors.append(SyncError(operation=operation, cause=str(error) or "Unknown error", slug=slug))
        if self.logger:
            self.logger.sync_item_error(slug, operation.value, str(error))

    def _finish(self, success: bool, tally: _Tally, start: float) -> SyncResult:
        result = SyncResult(
            success=success,
            products_added=tally.added,
            products_updated=tally.updated,
            products_removed=tally.removed,
            errors=tuple(tally.errors),
            last_sync=utc_now(),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        self._history.append(result)
        if self.logger:
            self.logger.sync_complete(
                success, tally.added, tally.updated, tally.removed, len(tally.errors), result.duration_ms
            )
        return result

    async def trigger_sync(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """Manual trigger; rejects with SyncInProgressError while a run is active."""
        if self._status.is_running:
            raise SyncInProgressError()
        return await self.sync_products(options)

    def transform_cms_product(self, product: CanonicalProduct) -> Dict[str, Any]:
        return transform.transform_cms_product(product)

    def optimize_image_url(self, url: str, options: Optional[ImageOptimizationOptions] = None) -> str:
        return transform.optimize_image_url(url, options or ImageOptimizationOptions())

    def should_update_product(
        self,
        remote: CanonicalProduct,
        local: LocalProductRecord,
        force_update: bool = False
    ) -> bool:
        return transform.should_update_product(remote, local, force_update)

    def get_sync_status(self) -> SyncProgress:
        return self._status

    def get_sync_history(self, limit: int = 10) -> List[SyncResult]:
        """Most recent results first."""
        return list(reversed(self._history))[:limit]

    def _set_status(self, **changes: Any) -> None:
        self._status = replace(self._status, **changes)
