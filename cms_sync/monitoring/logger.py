"""Structured logging for CMS access, sync runs and fallback decisions."""

import json
import logging
from typing import Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "cms_sync", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, url, status, attempt, elapsed_ms, error,
                      cb_state, source, strategy, batch, slug
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def cms_request(self, url: str, status: Optional[int], elapsed_ms: float) -> None:
        self.log("cms_request", url=url, status=status, elapsed_ms=round(elapsed_ms, 2))

    def cms_retry(self, url: str, attempt: int, delay: float, error: str) -> None:
        self.log("cms_retry", level=logging.WARNING, url=url, attempt=attempt, delay=delay, error=error)

    def cms_error(self, operation: str, error: str) -> None:
        self.log("cms_error", level=logging.ERROR, operation=operation, error=error)

    def cache_hit(self, key: str) -> None:
        self.log("cache_hit", level=logging.DEBUG, key=key)

    def circuit_breaker_state(self, state: str, failure_count: int) -> None:
        self.log("circuit_breaker", level=logging.WARNING, cb_state=state, failure_count=failure_count)

    def sync_start(self, category: Optional[str], dry_run: bool, force_update: bool) -> None:
        self.log("sync_start", category=category, dry_run=dry_run, force_update=force_update)

    def sync_batch(self, batch: int, total_batches: int, batch_size: int) -> None:
        self.log("sync_batch", level=logging.DEBUG, batch=batch, total_batches=total_batches, batch_size=batch_size)

    def sync_item_error(self, slug: Optional[str], operation: str, error: str) -> None:
        self.log("sync_item_error", level=logging.WARNING, slug=slug, operation=operation, error=error)

    def sync_complete(self, success: bool, added: int, updated: int, removed: int,
                      errors: int, elapsed_ms: float) -> None:
        self.log(
            "sync_complete",
            success=success,
            added=added,
            updated=updated,
            removed=removed,
            errors=errors,
            elapsed_ms=round(elapsed_ms, 2),
        )

    def fallback_served(self, source: str, strategy: str, is_stale: bool, error: Optional[str] = None) -> None:
        level = logging.INFO if not is_stale else logging.WARNING
        self.log("fallback_served", level=level, source=source, strategy=strategy, is_stale=is_stale, error=error)

    def store_error(self, operation: str, error: str) -> None:
        self.log("store_error", level=logging.ERROR, operation=operation, error=error)
