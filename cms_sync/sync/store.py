"""Local persistence contracts consumed by the sync engine and fallback service.

The persistence engine itself is external. These protocols describe the
operations the core needs; the in-memory implementations back the CLI and
the test-suite.
"""

import asyncio
import uuid
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from cms_sync.errors import StoreError
from cms_sync.models.data_models import LocalProductRecord, utc_now


@dataclass(frozen=True)
class Increment:
    """Update marker: add ``by`` to the stored counter instead of setting it."""
    by: int = 1


@dataclass
class SyncStatusRecord:
    """Persisted sync health row."""
    id: int
    is_healthy: bool
    last_successful_sync: Optional[datetime]
    last_attempted_sync: Optional[datetime]
    error_count: int
    last_error: Optional[str]


class ProductStore(Protocol):
    async def find_many(
        self,
        where: Optional[Dict[str, Any]] = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        order_by: Optional[Dict[str, str]] = None
    ) -> List[LocalProductRecord]:
        ...

    async def find_unique(self, slug: str) -> Optional[LocalProductRecord]:
        ...

    async def upsert(self, slug: str, create: Dict[str, Any], update: Dict[str, Any]) -> LocalProductRecord:
        ...

    async def delete(self, id: str) -> None:
        ...


class SyncStatusStore(Protocol):
    async def find_first(self, order_by: Optional[Dict[str, str]] = None) -> Optional[SyncStatusRecord]:
        ...

    async def upsert(self, id: int, create: Dict[str, Any], update: Dict[str, Any]) -> SyncStatusRecord:
        ...


def _sort_key(value: Any):
    # None sorts first ascending, last descending
    return (value is not None, value)


def _order(records: List[Any], order_by: Optional[Dict[str, str]]) -> List[Any]:
    if not order_by:
        return records
    for attr, direction in reversed(list(order_by.items())):
        records = sorted(
            records,
            key=lambda r: _sort_key(getattr(r, attr)),
            reverse=direction.lower() == "desc",
        )
    return records


_RECORD_FIELDS = {f.name for f in fields(LocalProductRecord)}


class InMemoryProductStore:
    """Dict-backed ProductStore keyed by slug; each call is atomic."""

    def __init__(self, records: Optional[List[LocalProductRecord]] = None):
        self._records: Dict[str, LocalProductRecord] = {r.slug: r for r in records or []}
        self._lock = asyncio.Lock()

    async def find_many(
        self,
        where: Optional[Dict[str, Any]] = None,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        order_by: Optional[Dict[str, str]] = None
    ) -> List[LocalProductRecord]:
        records = [
            r for r in self._records.values()
            if all(getattr(r, key, None) == value for key, value in (where or {}).items())
        ]
        records = _order(records, order_by)[skip or 0:]
        return records[:take] if take is not None else records

    async def find_unique(self, slug: str) -> Optional[LocalProductRecord]:
        return self._records.get(slug)

    async def upsert(self, slug: str, create: Dict[str, Any], update: Dict[str, Any]) -> LocalProductRecord:
        unknown = (set(create) | set(update)) - _RECORD_FIELDS
        if unknown:
            raise StoreError(f"Unknown product fields: {sorted(unknown)}", operation="upsert")

        async with self._lock:
            now = utc_now()
            existing = self._records.get(slug)
            if existing is None:
                data = {"created_at": now, "updated_at": now, **create, "slug": slug}
                data.setdefault("id", uuid.uuid4().hex)
                record = LocalProductRecord(**data)
            else:
                record = replace(existing, **{"updated_at": now, **update, "slug": slug})
            self._records[slug] = record
            return record

    async def delete(self, id: str) -> None:
        async with self._lock:
            for slug, record in self._records.items():
                if record.id == id:
                    del self._records[slug]
                    return
        raise StoreError(f"Product {id} not found", operation="delete")

    def all(self) -> List[LocalProductRecord]:
        return list(self._records.values())

    def __len__(self) -> int:
        return len(self._records)


class InMemorySyncStatusStore:
    """Dict-backed SyncStatusStore supporting Increment updates."""

    def __init__(self, rows: Optional[List[SyncStatusRecord]] = None) -> None:
        self._rows: Dict[int, SyncStatusRecord] = {row.id: row for row in rows or []}

    async def find_first(self, order_by: Optional[Dict[str, str]] = None) -> Optional[SyncStatusRecord]:
        rows = _order(list(self._rows.values()), order_by)
        return rows[0] if rows else None

    async def upsert(self, id: int, create: Dict[str, Any], update: Dict[str, Any]) -> SyncStatusRecord:
        existing = self._rows.get(id)
        if existing is None:
            row = SyncStatusRecord(id=id, **create)
        else:
            changes = {}
            for key, value in update.items():
                if isinstance(value, Increment):
                    value = getattr(existing, key) + value.by
                changes[key] = value
            row = replace(existing, **changes)
        self._rows[id] = row
        return row

    def all(self) -> List[SyncStatusRecord]:
        return list(self._rows.values())
