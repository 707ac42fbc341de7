"""Pytest configuration and shared fixtures."""

from datetime import datetime, timezone

import httpx
import pytest

from cms_sync.mock_servers import create_mock_cms
from cms_sync.models.config import CMSConfig
from cms_sync.models.data_models import CanonicalProduct, CMSProvider, LocalProductRecord, ProductVariant


class FakeClock:
    """Fake clock for testing."""

    def __init__(self, initial_time: float = 1_700_000_000.0):
        self._current_time = initial_time

    def now(self) -> float:
        return self._current_time

    def advance(self, seconds: float) -> None:
        self._current_time += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry backoff instantaneous; records requested delays."""
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("cms_sync.fetcher.retry_handler.asyncio.sleep", fake_sleep)
    return delays


@pytest.fixture
def cms_config():
    """Minimal valid configuration for the custom REST provider."""
    return CMSConfig(api_url="http://cms.test", api_key="secret", retry_attempts=0)


def ts(text: str) -> datetime:
    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)


def make_product(slug: str, updated_at: str = "2024-03-01T00:00:00", **overrides) -> CanonicalProduct:
    """Build a canonical product with sensible defaults."""
    data = dict(
        id=f"cms-{slug}",
        name=slug.replace("-", " ").title(),
        slug=slug,
        description="",
        price=10.0,
        category="Desks",
        images=(),
        variants=(),
        tags=(),
        in_stock=True,
        created_at=ts("2024-01-01T00:00:00"),
        updated_at=ts(updated_at),
    )
    data.update(overrides)
    return CanonicalProduct(**data)


def make_record(slug: str, updated_at: str = "2024-02-01T00:00:00", **overrides) -> LocalProductRecord:
    """Build a local record with sensible defaults."""
    data = dict(
        id=f"local-{slug}",
        slug=slug,
        name=slug,
        price=10.0,
        category="Desks",
        created_at=ts("2024-01-01T00:00:00"),
        updated_at=ts(updated_at),
    )
    data.update(overrides)
    return LocalProductRecord(**data)


def mock_transport(provider: CMSProvider = CMSProvider.CUSTOM, **kwargs) -> httpx.ASGITransport:
    """ASGI transport routing httpx requests into an in-process mock CMS."""
    return httpx.ASGITransport(app=create_mock_cms(provider=provider, **kwargs))


@pytest.fixture
def sample_variant():
    return ProductVariant(id="v1", color="Black", price=99.99, stock=5, color_hex="#000000")
