from __future__ import annotations
from typing import Iterable, List, Optional

from invoice_builder.model import Product


def merge_catalogs(
    remote_products: Iterable[Product],
    local_products: Iterable[Product],
) -> List[Product]:
    """Combine the remote and local catalogs into one list.

    Remote products come first in their parsed order. A local product is
    appended only when no remote product has the same name ignoring case; the
    suppressed local product stays in the store untouched.
    """

    merged: List[Product] = list(remote_products)
    remote_names = {p.name.lower() for p in merged}

    for product in local_products:
        if product.from_catalog_sync:
            continue  # Stale remote copies never count as local entries
        if product.name.lower() in remote_names:
            continue
        merged.append(product)

    return merged


def sort_by_usage(products: Iterable[Product]) -> List[Product]:
    # Stable: ties keep their stored order
    return sorted(products, key=lambda p: p.usage_count, reverse=True)


def find_by_name(products: Iterable[Product], name: str) -> Optional[Product]:
    """Return the first product named ``name`` ignoring case and padding."""
    wanted = name.strip().lower()
    for product in products:
        if product.name.lower() == wanted:
            return product
    return None


def suggest_products(products: Iterable[Product], query: str, limit: int = 5) -> List[Product]:
    """Autocomplete: products whose name contains ``query``, in catalog order."""

    needle = query.strip().lower()
    if not needle:
        return []
    matches = [p for p in products if needle in p.name.lower()]
    return matches[:limit]


__all__ = ["find_by_name", "merge_catalogs", "sort_by_usage", "suggest_products"]
