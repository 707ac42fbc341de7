"""Expiring caches."""

from .memory import CacheBackend, CacheEntry, TTLCache

__all__ = ["CacheBackend", "CacheEntry", "TTLCache"]
