"""Unit tests for mock CMS servers."""

import pytest
from fastapi.testclient import TestClient

from cms_sync.mock_servers import create_app, create_mock_cms
from cms_sync.models.data_models import CMSProvider


class TestCustomMockServer:

    @pytest.fixture
    def client(self):
        return TestClient(create_mock_cms(random_seed=42))

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "version": "1.0.0"}

    def test_list_products(self, client):
        response = client.get("/products")
        assert response.status_code == 200
        assert [p["slug"] for p in response.json()] == ["desk-1", "desk-2", "lamp-1"]

    def test_category_limit_offset(self, client):
        assert [p["slug"] for p in client.get("/products?category=Desks").json()] == ["desk-1", "desk-2"]
        assert [p["slug"] for p in client.get("/products?limit=1&offset=1").json()] == ["desk-2"]

    def test_single_product_and_404(self, client):
        assert client.get("/products/lamp-1").json()["name"] == "Desk Lamp"
        assert client.get("/products/nope").status_code == 404


class TestProviderShapes:

    def test_contentful_routes(self):
        client = TestClient(create_mock_cms(CMSProvider.CONTENTFUL, space_id="abc", environment="master"))

        health = client.get("/spaces/abc/environments/master")
        entries = client.get("/spaces/abc/environments/master/entries").json()

        assert health.status_code == 200
        assert entries["total"] == 3
        assert entries["items"][0]["fields"]["images"][0]["fields"]["file"]["url"].endswith("desk-1.jpg")

    def test_strapi_routes(self):
        client = TestClient(create_mock_cms(CMSProvider.STRAPI))

        data = client.get("/api/products").json()["data"]
        single = client.get("/api/products/desk-2").json()

        assert data[0]["attributes"]["slug"] == "desk-1"
        assert single["data"]["id"] == 2
        assert client.get("/admin/init").status_code == 200

    def test_sanity_routes(self):
        client = TestClient(create_mock_cms(CMSProvider.SANITY))

        result = client.get("/query").json()["result"]

        assert result[2]["slug"] == {"current": "lamp-1"}
        assert client.get("/ping").status_code == 200


class TestBehaviors:

    def test_api_key_required(self):
        client = TestClient(create_mock_cms(api_key="secret"))

        assert client.get("/health").status_code == 401
        assert client.get("/health", headers={"Authorization": "Bearer secret"}).status_code == 200

    def test_error_rate_one_always_fails(self):
        client = TestClient(create_mock_cms(random_seed=1, error_rate=1.0))

        statuses = {client.get("/products").status_code for _ in range(10)}

        assert statuses <= {500, 502, 503}

    def test_custom_catalog(self):
        client = TestClient(create_mock_cms(products=[]))
        assert client.get("/products").json() == []

    def test_factory_reads_environment(self, monkeypatch):
        monkeypatch.setenv("MOCK_CMS_PROVIDER", "sanity")
        monkeypatch.setenv("MOCK_CMS_API_KEY", "")

        client = TestClient(create_app())

        assert client.get("/ping").status_code == 200
