"""Provider adapter contract and defensive field parsing shared by adapters.

Each CMS flavour ships its own wire format. Adapters turn those payloads into
CanonicalProduct instances without ever assuming a field is present: missing
collections become empty, missing strings become "", missing prices become 0
and products are in stock unless explicitly marked otherwise.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from cms_sync.models.config import CMSConfig
from cms_sync.models.data_models import (
    CanonicalProduct,
    CMSProvider,
    ProductFilters,
    ProductVariant,
    utc_now,
)


def as_list(value: Any) -> List[Any]:
    """Return value if it is a list, else an empty list."""
    return value if isinstance(value, list) else []


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_str(value: Any) -> str:
    """
    Coerce scalar identifiers and text to str.

    None, containers and booleans become "".
    """
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value)


def as_price(value: Any) -> float:
    """Parse a non-negative price; anything unusable becomes 0.0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        price = float(value)
    elif isinstance(value, str):
        try:
            price = float(value.strip().replace("$", "").replace(",", ""))
        except ValueError:
            return 0.0
    else:
        return 0.0
    return round(price, 2) if price >= 0 else 0.0


def as_in_stock(value: Any) -> bool:
    """Only an explicit False marks a product out of stock."""
    return value is not False


def as_str_tuple(value: Any) -> Tuple[str, ...]:
    return tuple(as_str(v) for v in as_list(value) if as_str(v))


def parse_timestamp(value: Any, default: Optional[datetime] = None) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive timestamps are assumed to be UTC. Missing or unparsable values
    fall back to ``default`` (or now).
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return default or utc_now()
    else:
        return default or utc_now()

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_variants(value: Any) -> Tuple[ProductVariant, ...]:
    """Parse a list of variant objects; non-dict entries are skipped."""
    variants = []
    for raw in as_list(value):
        if not isinstance(raw, dict):
            continue
        try:
            stock = max(0, int(raw.get("stock") or 0))
        except (TypeError, ValueError):
            stock = 0
        variants.append(ProductVariant(
            id=as_str(raw.get("id")),
            color=as_str(raw.get("color")),
            color_hex=as_str(raw.get("colorHex") or raw.get("color_hex")) or None,
            size=as_str(raw.get("size")) or None,
            price=as_price(raw.get("price")),
            stock=stock,
            images=as_str_tuple(raw.get("images")),
        ))
    return tuple(variants)


def build_product(
    id: Any,
    fields: Dict[str, Any],
    slug: Any,
    images: Iterable[str],
    created_at: Any,
    updated_at: Any,
) -> CanonicalProduct:
    """Assemble a CanonicalProduct from already-located provider fields."""
    now = utc_now()
    return CanonicalProduct(
        id=as_str(id),
        name=as_str(fields.get("name")),
        slug=as_str(slug),
        description=as_str(fields.get("description")),
        price=as_price(fields.get("price")),
        category=as_str(fields.get("category")),
        images=tuple(url for url in images if url),
        variants=parse_variants(fields.get("variants")),
        tags=as_str_tuple(fields.get("tags")),
        in_stock=as_in_stock(fields.get("inStock")),
        created_at=parse_timestamp(created_at, now),
        updated_at=parse_timestamp(updated_at, now),
    )


class ProviderAdapter(ABC):
    """
    Translates between one CMS wire format and the canonical model.

    Subclasses declare ``provider`` and the endpoint layout; URL building and
    auth headers are shared.
    """

    provider: CMSProvider

    def __init__(self, config: CMSConfig):
        self.config = config

    @property
    def base_url(self) -> str:
        return self.config.api_url.rstrip("/")

    @abstractmethod
    def health_check_url(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def products_endpoint(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def transform_products(self, data: Any) -> List[CanonicalProduct]:
        """Transform a list payload; malformed payloads yield []."""
        raise NotImplementedError

    @abstractmethod
    def wrap_single(self, data: Any) -> Any:
        """Wrap a single-item payload in this provider's list envelope."""
        raise NotImplementedError

    def products_url(self, filters: Optional[ProductFilters] = None) -> str:
        params: Dict[str, Any] = {}
        if filters is not None:
            if filters.category:
                params["category"] = filters.category
            if filters.limit:
                params["limit"] = filters.limit
            if filters.offset:
                params["offset"] = filters.offset
        query = urlencode(params)
        return f"{self.products_endpoint()}?{query}" if query else self.products_endpoint()

    def product_url(self, slug: str) -> str:
        return f"{self.products_endpoint()}/{slug}"

    def auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def transform_product(self, data: Any) -> Optional[CanonicalProduct]:
        """Transform a single-item payload by reusing the list transform."""
        products = self.transform_products(self.wrap_single(data))
        return products[0] if products else None

    def health_version(self, data: Any) -> Optional[str]:
        """Extract a version string from a health payload, if reported."""
        data = as_dict(data)
        version = data.get("version") or as_dict(data.get("sys")).get("version")
        return as_str(version) or None
