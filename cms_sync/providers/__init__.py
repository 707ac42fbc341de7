"""Provider adapters normalizing CMS wire formats."""

from .base import ProviderAdapter
from .contentful import ContentfulAdapter
from .generic import GenericAdapter
from .registry import ProviderRegistry, get_adapter, registry
from .sanity import SanityAdapter
from .strapi import StrapiAdapter

__all__ = [
    "ContentfulAdapter",
    "GenericAdapter",
    "ProviderAdapter",
    "ProviderRegistry",
    "SanityAdapter",
    "StrapiAdapter",
    "get_adapter",
    "registry",
]
