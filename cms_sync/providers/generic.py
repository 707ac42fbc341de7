"""Adapter for custom backends serving a plain JSON array of products."""

from typing import Any, List

from cms_sync.models.data_models import CanonicalProduct, CMSProvider
from cms_sync.providers.base import ProviderAdapter, as_list, as_str, build_product


class GenericAdapter(ProviderAdapter):
    provider = CMSProvider.CUSTOM

    def health_check_url(self) -> str:
        return f"{self.base_url}/health"

    def products_endpoint(self) -> str:
        return f"{self.base_url}/products"

    def wrap_single(self, data: Any) -> Any:
        return data if isinstance(data, list) else [data]

    def transform_products(self, data: Any) -> List[CanonicalProduct]:
        products = []
        for item in as_list(data):
            if not isinstance(item, dict):
                continue
            products.append(build_product(
                id=item.get("id"),
                fields=item,
                slug=item.get("slug"),
                images=[as_str(url) for url in as_list(item.get("images"))],
                created_at=item.get("createdAt"),
                updated_at=item.get("updatedAt"),
            ))
        return products
