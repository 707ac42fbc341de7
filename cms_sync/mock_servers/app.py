"""FastAPI mock CMS servers speaking each provider's wire format."""

import asyncio
import os
import random
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request

from cms_sync.models.data_models import CMSProvider


def sample_catalog() -> List[Dict[str, Any]]:
    """Deterministic provider-neutral catalog used by the mock servers."""
    return [
        {
            "id": "1",
            "name": "Standing Desk",
            "slug": "desk-1",
            "description": "Electric height-adjustable desk",
            "price": 99.99,
            "category": "Desks",
            "images": ["https://images.ctfassets.net/space/desk-1.jpg"],
            "variants": [
                {"id": "v1", "color": "Black", "colorHex": "#000000", "price": 99.99, "stock": 5, "images": []},
                {"id": "v2", "color": "White", "colorHex": "#ffffff", "price": 109.99, "stock": 0, "images": []},
            ],
            "tags": ["office", "ergonomic"],
            "inStock": True,
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-03-01T12:00:00Z",
        },
        {
            "id": "2",
            "name": "Walnut Desk",
            "slug": "desk-2",
            "description": "Solid walnut writing desk",
            "price": 349.0,
            "category": "Desks",
            "images": ["https://cdn.sanity.io/images/p/production/desk-2.png"],
            "variants": [
                {"id": "v3", "color": "Walnut", "price": 349.0, "stock": 2, "images": []},
            ],
            "tags": ["wood"],
            "inStock": True,
            "createdAt": "2024-01-02T00:00:00Z",
            "updatedAt": "2024-02-15T08:30:00Z",
        },
        {
            "id": "3",
            "name": "Desk Lamp",
            "slug": "lamp-1",
            "description": "Dimmable LED lamp",
            "price": 39.5,
            "category": "Lighting",
            "images": ["https://example.com/uploads/lamp-1.jpg"],
            "variants": [],
            "tags": ["led"],
            "inStock": False,
            "createdAt": "2024-01-03T00:00:00Z",
            "updatedAt": "2024-01-03T00:00:00Z",
        },
    ]


def render_product(provider: CMSProvider, product: Dict[str, Any]) -> Dict[str, Any]:
    """Render a catalog entry in the provider's item shape."""
    fields = {k: v for k, v in product.items() if k not in ("id", "createdAt", "updatedAt", "images")}

    if provider is CMSProvider.CONTENTFUL:
        return {
            "sys": {"id": product["id"], "createdAt": product["createdAt"], "updatedAt": product["updatedAt"]},
            "fields": {**fields, "images": [{"fields": {"file": {"url": url}}} for url in product["images"]]},
        }
    if provider is CMSProvider.STRAPI:
        return {
            "id": int(product["id"]),
            "attributes": {
                **fields,
                "images": {"data": [{"attributes": {"url": url}} for url in product["images"]]},
                "createdAt": product["createdAt"],
                "updatedAt": product["updatedAt"],
            },
        }
    if provider is CMSProvider.SANITY:
        return {
            **fields,
            "_id": product["id"],
            "slug": {"current": product["slug"]},
            "images": [{"asset": {"url": url}} for url in product["images"]],
            "_createdAt": product["createdAt"],
            "_updatedAt": product["updatedAt"],
        }
    return dict(product)


def wrap_list(provider: CMSProvider, items: List[Dict[str, Any]]) -> Any:
    if provider is CMSProvider.CONTENTFUL:
        return {"items": items, "total": len(items)}
    if provider is CMSProvider.STRAPI:
        return {"data": items, "meta": {"pagination": {"total": len(items)}}}
    if provider is CMSProvider.SANITY:
        return {"result": items}
    return items


def wrap_single(provider: CMSProvider, item: Dict[str, Any]) -> Any:
    if provider is CMSProvider.STRAPI:
        return {"data": item}
    if provider is CMSProvider.SANITY:
        return {"result": item}
    return item


def create_mock_cms(
    provider: CMSProvider = CMSProvider.CUSTOM,
    products: Optional[List[Dict[str, Any]]] = None,
    api_key: Optional[str] = None,
    space_id: str = "space",
    environment: str = "master",
    version: str = "1.0.0",
    random_seed: Optional[int] = None,
    error_rate: float = 0.0,
    extra_latency_ms: int = 0
) -> FastAPI:
    """
    Create a FastAPI mock CMS with configurable behavior.

    Args:
        provider: Wire format to speak
        products: Catalog to serve (defaults to sample_catalog())
        api_key: If set, requests must carry ``Authorization: Bearer <api_key>``
        space_id: Contentful space segment
        environment: Contentful environment segment
        version: Version reported by the health endpoint
        random_seed: Seed for deterministic error injection
        error_rate: Probability of returning 5xx errors (0.0-1.0)
        extra_latency_ms: Additional latency in milliseconds

    Returns:
        FastAPI application
    """
    app = FastAPI(title=f"Mock CMS - {provider.value}")
    catalog = sample_catalog() if products is None else products
    rng = random.Random(random_seed)

    async def guard(request: Request) -> None:
        if extra_latency_ms > 0:
            await asyncio.sleep(extra_latency_ms / 1000.0)
        if api_key is not None and request.headers.get("authorization") != f"Bearer {api_key}":
            raise HTTPException(status_code=401, detail="Invalid API key")
        if rng.random() < error_rate:
            raise HTTPException(status_code=rng.choice([500, 502, 503]), detail="Simulated error")

    async def list_products(
        request: Request,
        category: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ):
        await guard(request)
        selected = [p for p in catalog if category is None or p.get("category") == category]
        selected = selected[offset:]
        if limit:
            selected = selected[:limit]
        return wrap_list(provider, [render_product(provider, p) for p in selected])

    async def get_product(request: Request, slug: str):
        await guard(request)
        for product in catalog:
            if product.get("slug") == slug:
                return wrap_single(provider, render_product(provider, product))
        raise HTTPException(status_code=404, detail="Product not found")

    async def health(request: Request):
        await guard(request)
        if provider is CMSProvider.CONTENTFUL:
            return {"sys": {"id": environment, "type": "Environment", "version": version}}
        return {"status": "healthy", "version": version}

    if provider is CMSProvider.CONTENTFUL:
        base = f"/spaces/{space_id}/environments/{environment}"
        health_path, products_path = base, f"{base}/entries"
    elif provider is CMSProvider.STRAPI:
        health_path, products_path = "/admin/init", "/api/products"
    elif provider is CMSProvider.SANITY:
        health_path, products_path = "/ping", "/query"
    else:
        health_path, products_path = "/health", "/products"

    app.add_api_route(health_path, health, methods=["GET"])
    app.add_api_route(products_path, list_products, methods=["GET"])
    app.add_api_route(f"{products_path}/{{slug}}", get_product, methods=["GET"])
    return app


def create_app() -> FastAPI:
    """
    Factory function for uvicorn --factory.

    Reads MOCK_CMS_PROVIDER, MOCK_CMS_API_KEY, ERROR_RATE, EXTRA_LATENCY_MS
    and RANDOM_SEED from the environment.
    """
    return create_mock_cms(
        provider=CMSProvider(os.getenv("MOCK_CMS_PROVIDER", "custom")),
        api_key=os.getenv("MOCK_CMS_API_KEY") or None,
        random_seed=int(os.getenv("RANDOM_SEED", 42)),
        error_rate=float(os.getenv("ERROR_RATE", 0.0)),
        extra_latency_ms=int(os.getenv("EXTRA_LATENCY_MS", 0)),
    )
