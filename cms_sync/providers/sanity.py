"""Sanity query API adapter."""

from typing import Any, List

from cms_sync.models.data_models import CanonicalProduct, CMSProvider
from cms_sync.providers.base import ProviderAdapter, as_dict, as_list, as_str, build_product


class SanityAdapter(ProviderAdapter):
    """Documents come back as ``{"result": [...]}`` with ``slug.current`` and ``images[].asset.url``."""

    provider = CMSProvider.SANITY

    def health_check_url(self) -> str:
        return f"{self.base_url}/ping"

    def products_endpoint(self) -> str:
        return f"{self.base_url}/query"

    def wrap_single(self, data: Any) -> Any:
        payload = as_dict(data)
        document = payload.get("result") if isinstance(payload.get("result"), dict) else payload
        return {"result": [document]}

    def transform_products(self, data: Any) -> List[CanonicalProduct]:
        products = []
        for item in as_list(as_dict(data).get("result")):
            if not isinstance(item, dict):
                continue
            images = [
                as_str(as_dict(image.get("asset")).get("url"))
                for image in as_list(item.get("images"))
                if isinstance(image, dict)
            ]
            products.append(build_product(
                id=item.get("_id"),
                fields=item,
                slug=as_dict(item.get("slug")).get("current"),
                images=images,
                created_at=item.get("_createdAt"),
                updated_at=item.get("_updatedAt"),
            ))
        return products
