"""Unit tests for SyncOrchestrator.

Tests cover:
- Happy path sync recorded in sync status
- Fetch failure recorded as unhealthy
- Total timeout enforcement
- Connection check and fallback reads
"""

import asyncio
from unittest.mock import patch

import pytest

from conftest import mock_transport

from cms_sync.models.config import AppConfig
from cms_sync.models.data_models import DataSource, ProductFilters, SyncOptions
from cms_sync.pipeline.orchestrator import SyncOrchestrator


def app_config(**overrides):
    data = {
        "cms": {"api_url": "http://cms.test", "api_key": "secret", "retry_attempts": 0},
        "log_level": "ERROR",
    }
    data.update(overrides)
    return AppConfig(**data)


@pytest.mark.asyncio
async def test_sync_runs_and_records_success():
    async with SyncOrchestrator(app_config(), transport=mock_transport()) as orchestrator:
        result = await orchestrator.run_sync()
        status = await orchestrator.sync_status()

    assert result.success is True
    assert result.products_added == 3
    assert len(orchestrator.product_store) == 3
    assert status.is_healthy is True
    assert status.error_count == 0


@pytest.mark.asyncio
async def test_failed_sync_marks_status_unhealthy():
    transport = mock_transport(error_rate=1.0, random_seed=7)
    async with SyncOrchestrator(app_config(), transport=transport) as orchestrator:
        result = await orchestrator.run_sync()
        status = await orchestrator.sync_status()

    assert result.success is False
    assert status.is_healthy is False
    assert status.error_count == 1
    assert status.last_error.startswith("Failed to fetch products from CMS")


@pytest.mark.asyncio
async def test_total_timeout_is_enforced():
    async def never_finishes(options=None):
        await asyncio.sleep(10)

    orchestrator = SyncOrchestrator(app_config(total_timeout=0.05), transport=mock_transport())
    with patch.object(orchestrator.sync_service, "trigger_sync", never_finishes):
        with pytest.raises(asyncio.TimeoutError):
            await orchestrator.run_sync()

    status = await orchestrator.sync_status()
    assert status.is_healthy is False
    assert "timed out" in status.last_error


@pytest.mark.asyncio
async def test_check_connection_redacts_key():
    async with SyncOrchestrator(app_config(), transport=mock_transport(api_key="secret")) as orchestrator:
        report = await orchestrator.check_connection()

    assert report["connection"].success is True
    assert report["health"].is_healthy is True
    assert "secret" not in str(report["config"])


@pytest.mark.asyncio
async def test_list_products_after_sync_survives_outage():
    async with SyncOrchestrator(app_config(), transport=mock_transport()) as orchestrator:
        await orchestrator.run_sync(SyncOptions())

    offline = SyncOrchestrator(
        app_config(),
        product_store=orchestrator.product_store,
        transport=mock_transport(error_rate=1.0),
    )
    async with offline:
        result = await offline.list_products(ProductFilters(category="Desks"))

    assert result.source == DataSource.LOCAL
    assert sorted(r.slug for r in result.data) == ["desk-1", "desk-2"]
