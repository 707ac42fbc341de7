"""Unit tests for the in-memory product and sync status stores."""

from datetime import datetime, timezone

import pytest

from conftest import make_record

from cms_sync.errors import StoreError
from cms_sync.sync.store import Increment, InMemoryProductStore, InMemorySyncStatusStore


class TestProductStore:

    @pytest.mark.asyncio
    async def test_find_many_filters_orders_and_limits(self):
        store = InMemoryProductStore([
            make_record("a", category="Desks", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
            make_record("b", category="Lighting", created_at=datetime(2024, 1, 2, tzinfo=timezone.utc)),
            make_record("c", category="Desks", created_at=datetime(2024, 1, 3, tzinfo=timezone.utc)),
        ])

        desks = await store.find_many(where={"category": "Desks"}, order_by={"created_at": "desc"})
        newest = await store.find_many(take=1, order_by={"created_at": "desc"})

        assert [r.slug for r in desks] == ["c", "a"]
        assert [r.slug for r in newest] == ["c"]

    @pytest.mark.asyncio
    async def test_find_many_skips_before_taking(self):
        store = InMemoryProductStore([
            make_record(f"p-{i}", created_at=datetime(2024, 1, i + 1, tzinfo=timezone.utc))
            for i in range(4)
        ])
        order = {"created_at": "desc"}

        first_page = await store.find_many(skip=0, take=2, order_by=order)
        second_page = await store.find_many(skip=2, take=2, order_by=order)
        past_end = await store.find_many(skip=10, take=2, order_by=order)

        assert [r.slug for r in first_page] == ["p-3", "p-2"]
        assert [r.slug for r in second_page] == ["p-1", "p-0"]
        assert past_end == []

    @pytest.mark.asyncio
    async def test_upsert_creates_then_updates(self):
        store = InMemoryProductStore()

        created = await store.upsert("a", create={"name": "A", "price": 1.0}, update={"name": "ignored"})
        updated = await store.upsert("a", create={"name": "ignored", "price": 0.0}, update={"price": 2.0})

        assert created.id
        assert updated.id == created.id
        assert updated.name == "A"
        assert updated.price == 2.0
        assert updated.updated_at >= created.updated_at
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_upsert_rejects_unknown_fields(self):
        store = InMemoryProductStore()

        with pytest.raises(StoreError, match="Unknown product fields"):
            await store.upsert("a", create={"name": "A", "price": 1.0, "bogus": 1}, update={})

    @pytest.mark.asyncio
    async def test_delete_by_id(self):
        store = InMemoryProductStore([make_record("a"), make_record("b")])

        await store.delete("local-a")

        assert await store.find_unique("a") is None
        with pytest.raises(StoreError):
            await store.delete("local-a")


class TestSyncStatusStore:

    @pytest.mark.asyncio
    async def test_increment_marker(self):
        store = InMemorySyncStatusStore()
        create = {
            "is_healthy": False,
            "last_successful_sync": None,
            "last_attempted_sync": None,
            "error_count": 1,
            "last_error": "x",
        }

        await store.upsert(1, create=create, update={"error_count": Increment(1)})
        row = await store.upsert(1, create=create, update={"error_count": Increment(2)})

        assert row.error_count == 3
        assert store.all() == [row]

    @pytest.mark.asyncio
    async def test_find_first_on_empty_store(self):
        assert await InMemorySyncStatusStore().find_first() is None
