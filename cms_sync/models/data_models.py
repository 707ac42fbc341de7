"""Core data models for CMS access, synchronization and fallback."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar, Union


T = TypeVar("T")


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class CMSProvider(Enum):
    """Supported content-management backends."""
    CONTENTFUL = "contentful"
    STRAPI = "strapi"
    SANITY = "sanity"
    CUSTOM = "custom"


class ConnectionStatus(Enum):
    """Outcome of a connection test."""
    CONNECTED = "connected"
    ERROR = "error"
    UNAUTHORIZED = "unauthorized"
    TIMEOUT = "timeout"


class DataSource(Enum):
    """Where a fallback answer came from."""
    CMS = "cms"
    LOCAL = "local"
    CACHE = "cache"
    NONE = "none"


class FallbackStrategy(Enum):
    """Preference order among CMS, cache and local store."""
    CMS_FIRST = "cms_first"
    CACHE_FIRST = "cache_first"
    LOCAL_ONLY = "local_only"


class SyncStep(Enum):
    """Synchronization run state machine."""
    IDLE = "idle"
    FETCHING_REMOTE = "fetching-remote"
    LOADING_LOCAL = "loading-local"
    PROCESSING_BATCHES = "processing-batches"
    HANDLING_REMOVALS = "handling-removals"
    COMPLETED = "completed"
    ERROR = "error"


class SyncOperation(Enum):
    """Operation a sync error is attributed to."""
    FETCH = "fetch"
    UPSERT = "upsert"
    DELETE = "delete"


@dataclass(frozen=True)
class ProductVariant:
    """A purchasable variant of a product (color/size combination)."""
    id: str
    color: str
    price: float
    stock: int = 0
    color_hex: Optional[str] = None
    size: Optional[str] = None
    images: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CanonicalProduct:
    """Provider-agnostic product as materialized from a remote fetch."""
    id: str
    name: str
    slug: str
    description: str
    price: float
    category: str
    images: Tuple[str, ...]
    variants: Tuple[ProductVariant, ...]
    tags: Tuple[str, ...]
    in_stock: bool
    created_at: datetime
    updated_at: datetime


@dataclass
class LocalProductRecord:
    """Persisted counterpart of a canonical product, keyed by slug."""
    id: str
    slug: str
    name: str
    price: float
    description: str = ""
    category: str = ""
    image: str = ""
    images: List[str] = field(default_factory=list)
    variants: List[Dict[str, Any]] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    in_stock: bool = True
    rating: float = 0.0
    created_by: str = "system"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ProductFilters:
    """Optional filters for product listing."""
    category: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    def cache_key(self, prefix: str = "products") -> str:
        """Deterministic cache key; absent filters are omitted."""
        present = {k: v for k, v in (
            ("category", self.category),
            ("limit", self.limit),
            ("offset", self.offset),
        ) if v is not None}
        return f"{prefix}_{json.dumps(present, sort_keys=True)}"


@dataclass(frozen=True)
class ConnectionResult:
    """Result of a single CMS connection test."""
    success: bool
    status: ConnectionStatus
    response_time_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class HealthStatus:
    """Boolean health snapshot of the CMS."""
    is_healthy: bool
    response_time_ms: float
    last_checked: datetime
    error: Optional[str] = None
    version: Optional[str] = None


@dataclass(frozen=True)
class SyncOptions:
    """Options for one synchronization run."""
    category: Optional[str] = None
    dry_run: bool = False
    batch_size: Optional[int] = None
    force_update: bool = False


@dataclass(frozen=True)
class ImageOptimizationOptions:
    """Target rendition for CDN image URLs."""
    width: Optional[int] = None
    height: Optional[int] = None
    quality: Optional[int] = None
    format: Optional[str] = None  # webp | jpg | png


@dataclass(frozen=True)
class SyncError:
    """Structured per-item (or fetch-level) synchronization error."""
    operation: SyncOperation
    cause: str
    slug: Optional[str] = None

    @property
    def message(self) -> str:
        if self.operation is SyncOperation.FETCH:
            return f"Failed to fetch products from CMS: {self.cause}"
        if self.operation is SyncOperation.DELETE:
            return f"Failed to remove product {self.slug}: {self.cause}"
        return f"Failed to sync product {self.slug}: {self.cause}"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class SyncResult:
    """Immutable outcome of one synchronization run."""
    success: bool
    products_added: int
    products_updated: int
    products_removed: int
    errors: Tuple[SyncError, ...]
    last_sync: datetime
    duration_ms: float

    @property
    def error_messages(self) -> List[str]:
        return [error.message for error in self.errors]


@dataclass(frozen=True)
class SyncProgress:
    """Live status of the synchronization engine."""
    is_running: bool = False
    progress: float = 0.0
    current_step: SyncStep = SyncStep.IDLE
    step_detail: Optional[str] = None
    started_at: Optional[datetime] = None


@dataclass(frozen=True)
class SyncStatusInfo:
    """Persisted sync health merged with live circuit breaker state."""
    is_healthy: bool
    last_successful_sync: Optional[datetime]
    last_attempted_sync: Optional[datetime]
    error_count: int
    last_error: Optional[str]
    days_since_last_sync: float
    circuit_breaker_open: bool


@dataclass(frozen=True)
class CircuitBreakerState:
    """Snapshot of the CMS circuit breaker."""
    is_open: bool
    failure_count: int
    last_failure_time: Optional[datetime]
    next_attempt_time: Optional[datetime]


@dataclass(frozen=True)
class Fresh(Generic[T]):
    """Answer served from a live, successful CMS call."""
    data: T
    source: DataSource = DataSource.CMS
    is_stale: bool = field(default=False, init=False)
    error: Optional[str] = field(default=None, init=False)
    circuit_breaker_open: bool = field(default=False, init=False)


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """Answer served from cache, local store, or nothing at all."""
    data: T
    source: DataSource
    error: Optional[str] = None
    circuit_breaker_open: bool = False
    is_stale: bool = field(default=True, init=False)


FallbackResult = Union[Fresh[T], Degraded[T]]
ProductsResult = FallbackResult[List[LocalProductRecord]]
ProductResult = FallbackResult[Optional[LocalProductRecord]]
