"""Registry mapping each CMSProvider to its adapter class."""

from typing import Dict, List, Type

from cms_sync.models.config import CMSConfig
from cms_sync.models.data_models import CMSProvider
from cms_sync.providers.base import ProviderAdapter
from cms_sync.providers.contentful import ContentfulAdapter
from cms_sync.providers.generic import GenericAdapter
from cms_sync.providers.sanity import SanityAdapter
from cms_sync.providers.strapi import StrapiAdapter


class ProviderRegistry:
    def __init__(self) -> None:
        self._adapters: Dict[CMSProvider, Type[ProviderAdapter]] = {}

    def register(self, adapter: Type[ProviderAdapter]) -> None:
        self._adapters[adapter.provider] = adapter

    def create(self, config: CMSConfig) -> ProviderAdapter:
        if config.provider not in self._adapters:
            raise KeyError(f"Unknown provider adapter: {config.provider.value}")
        return self._adapters[config.provider](config)

    def list_adapters(self) -> List[str]:
        return sorted(provider.value for provider in self._adapters)


registry = ProviderRegistry()
for _adapter in (ContentfulAdapter, StrapiAdapter, SanityAdapter, GenericAdapter):
    registry.register(_adapter)


def get_adapter(config: CMSConfig) -> ProviderAdapter:
    """Build the adapter for ``config.provider``."""
    return registry.create(config)
