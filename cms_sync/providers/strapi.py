"""Strapi REST adapter."""

from typing import Any, List

from cms_sync.models.data_models import CanonicalProduct, CMSProvider
from cms_sync.providers.base import ProviderAdapter, as_dict, as_list, as_str, build_product


class StrapiAdapter(ProviderAdapter):
    """
    Collection at ``/api/products``; payloads are ``{"data": [{"id", "attributes"}]}``
    with media relations nested as ``images.data[].attributes.url``.
    """

    provider = CMSProvider.STRAPI

    def health_check_url(self) -> str:
        return f"{self.base_url}/admin/init"

    def products_endpoint(self) -> str:
        return f"{self.base_url}/api/products"

    def wrap_single(self, data: Any) -> Any:
        # Single-entry responses are {"data": {...}}; accept a bare entry too
        payload = as_dict(data)
        entry = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        return {"data": [entry]}

    def transform_products(self, data: Any) -> List[CanonicalProduct]:
        products = []
        for item in as_list(as_dict(data).get("data")):
            if not isinstance(item, dict):
                continue
            attributes = as_dict(item.get("attributes"))
            images = [
                as_str(as_dict(image.get("attributes")).get("url"))
                for image in as_list(as_dict(attributes.get("images")).get("data"))
                if isinstance(image, dict)
            ]
            products.append(build_product(
                id=item.get("id"),
                fields=attributes,
                slug=attributes.get("slug"),
                images=images,
                created_at=attributes.get("createdAt"),
                updated_at=attributes.get("updatedAt"),
            ))
        return products
