from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from invoice_builder.model import Product


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialise_product(product: Product) -> Dict[str, Any]:
    return {
        "name": product.name,
        "price": product.price,
        "unit": product.unit,
        "default_quantity": product.default_quantity,
        "usage_count": product.usage_count,
        "source": "sheet" if product.from_catalog_sync else "local",
    }


def build_catalog_payload(
    products: Iterable[Product],
    source_id: Optional[str],
) -> Dict[str, Any]:
    """Build JSON payload describing the merged catalog."""

    products = list(products)
    remote_count = sum(1 for p in products if p.from_catalog_sync)
    return {
        "status": "success",
        "timestamp": iso_timestamp(),
        "source_id": source_id,
        "remote_count": remote_count,
        "local_count": len(products) - remote_count,
        "products": [_serialise_product(p) for p in products],
        "error": None,
    }


def build_error_payload(source_id: Optional[str], error: str) -> Dict[str, Any]:
    return {
        "status": "error",
        "timestamp": iso_timestamp(),
        "source_id": source_id,
        "remote_count": 0,
        "local_count": 0,
        "products": [],
        "error": error,
    }


def write_report_to_json(payload: Dict[str, Any], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    return output_path
