"""In-memory store-with-expiry used by the CMS client and fallback service."""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, Protocol, TypeVar

from cms_sync.fetcher.circuit_breaker import Clock, WallClock


T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """Cached payload with its write time and TTL (seconds)."""
    payload: T
    timestamp: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.timestamp < self.ttl


class CacheBackend(Protocol):
    """Minimal cache contract; a distributed cache can stand in without touching callers."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def put(self, key: str, value: Any, ttl: float) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...


class TTLCache:
    """
    Process-local TTL cache.

    Entries are valid while ``now - timestamp < ttl``. Expired entries are
    treated as absent and evicted lazily when read.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or WallClock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_valid(self.clock.now()):
            del self._entries[key]
            return None
        return entry.payload

    def put(self, key: str, value: Any, ttl: float) -> None:
        self._entries[key] = CacheEntry(payload=value, timestamp=self.clock.now(), ttl=ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
