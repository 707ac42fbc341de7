"""Canonical-to-local product transformation and CDN image optimization."""

from dataclasses import asdict
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from cms_sync.models.data_models import CanonicalProduct, ImageOptimizationOptions, LocalProductRecord


DEFAULT_IMAGE_OPTIONS = ImageOptimizationOptions(width=800, quality=85)

# Asset hosts whose CDNs accept w/h/q/fm rendition parameters
_CONTENTFUL_HOSTS = ("ctfassets.net", "contentful.com")
_SANITY_HOSTS = ("cdn.sanity.io",)


def _append_query(url: str, params: Dict[str, Any]) -> str:
    if not params:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


def optimize_image_url(url: str, options: Optional[ImageOptimizationOptions] = None) -> str:
    """
    Rewrite an asset URL to request a resized/recompressed rendition.

    Contentful and Sanity asset CDNs get ``w``, ``h``, ``q`` and ``fm`` query
    parameters for whichever options are set. Strapi uploads and unknown
    hosts are returned unchanged.

    Args:
        url: Original image URL
        options: Target rendition; defaults to no changes

    Returns:
        Optimized URL
    """
    if not url or options is None:
        return url

    if any(host in url for host in _CONTENTFUL_HOSTS + _SANITY_HOSTS):
        params: Dict[str, Any] = {}
        if options.width:
            params["w"] = options.width
        if options.height:
            params["h"] = options.height
        if options.quality:
            params["q"] = options.quality
        if options.format:
            params["fm"] = options.format
        return _append_query(url, params)

    return url


def transform_cms_product(
    product: CanonicalProduct,
    image_options: Optional[ImageOptimizationOptions] = DEFAULT_IMAGE_OPTIONS
) -> Dict[str, Any]:
    """
    Build the local record payload (everything but ``id`` and timestamps).

    Image URLs are optimized and variant colors are flattened into an
    order-preserving, deduplicated ``colors`` list.
    """
    images = [optimize_image_url(url, image_options) for url in product.images]
    colors = list(dict.fromkeys(v.color for v in product.variants if v.color))
    variants = [
        {**asdict(variant), "images": list(variant.images)}
        for variant in product.variants
    ]

    return {
        "name": product.name,
        "slug": product.slug,
        "description": product.description,
        "price": product.price,
        "category": product.category,
        "image": images[0] if images else "",
        "images": images,
        "variants": variants,
        "tags": list(product.tags),
        "in_stock": product.in_stock,
        "colors": colors,
    }


def to_local_record(product: CanonicalProduct) -> LocalProductRecord:
    """Local-shaped view of a live CMS product (no image rewriting)."""
    return LocalProductRecord(
        id=product.id,
        created_at=product.created_at,
        updated_at=product.updated_at,
        **transform_cms_product(product, image_options=None),
    )


def should_update_product(
    remote: CanonicalProduct,
    local: LocalProductRecord,
    force_update: bool = False
) -> bool:
    """True iff forced or the remote record is strictly newer than the local one."""
    if force_update:
        return True
    return remote.updated_at > local.updated_at
