"""Contentful delivery API adapter."""

from typing import Any, List

from cms_sync.models.data_models import CanonicalProduct, CMSProvider
from cms_sync.providers.base import ProviderAdapter, as_dict, as_list, as_str, build_product


class ContentfulAdapter(ProviderAdapter):
    """
    Entries live under ``/spaces/{space}/environments/{env}/entries`` and are
    shaped ``{"items": [{"sys": {...}, "fields": {...}}]}``. Image fields are
    linked assets carrying ``fields.file.url``.
    """

    provider = CMSProvider.CONTENTFUL

    def _environment_url(self) -> str:
        environment = self.config.environment or "master"
        return f"{self.base_url}/spaces/{self.config.space_id}/environments/{environment}"

    def health_check_url(self) -> str:
        return self._environment_url()

    def products_endpoint(self) -> str:
        return f"{self._environment_url()}/entries"

    def wrap_single(self, data: Any) -> Any:
        return {"items": [data]}

    def transform_products(self, data: Any) -> List[CanonicalProduct]:
        products = []
        for item in as_list(as_dict(data).get("items")):
            if not isinstance(item, dict):
                continue
            sys = as_dict(item.get("sys"))
            fields = as_dict(item.get("fields"))
            images = [
                as_str(as_dict(as_dict(image.get("fields")).get("file")).get("url"))
                for image in as_list(fields.get("images"))
                if isinstance(image, dict)
            ]
            products.append(build_product(
                id=sys.get("id"),
                fields=fields,
                slug=fields.get("slug"),
                images=images,
                created_at=sys.get("createdAt"),
                updated_at=sys.get("updatedAt"),
            ))
        return products
