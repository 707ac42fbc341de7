"""Catalog synchronization."""

from .engine import ProductSyncService
from .store import (
    Increment,
    InMemoryProductStore,
    InMemorySyncStatusStore,
    ProductStore,
    SyncStatusRecord,
    SyncStatusStore,
)

__all__ = [
    "Increment",
    "InMemoryProductStore",
    "InMemorySyncStatusStore",
    "ProductStore",
    "ProductSyncService",
    "SyncStatusRecord",
    "SyncStatusStore",
]
