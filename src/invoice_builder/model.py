"""Domain models for invoice authoring.

These dataclasses represent the core entities shared throughout the tool:
customers, catalog products, invoice line items, the invoice itself, the
merchant's business details and the remote catalog cache entry.
"""

from __future__ import annotations  # Postponed evaluation of annotations (PEP 563)

import time  # Millisecond timestamps for created/last-used fields
import uuid  # Random identities for new records
from dataclasses import dataclass, field  # Dataclass utilities
from typing import Any, Dict, List, Optional


def new_id() -> str:
    """Return a fresh random identity."""
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None  # Blank strings are stored as absent


@dataclass(slots=True)
class Customer:
    """A customer that invoices are addressed to."""

    customer_id: str  # Unique identifier
    name: str  # Display name (e.g., "Sharma Dairy")
    phone: Optional[str] = None
    address: Optional[str] = None
    usage_count: int = 0  # Finalized invoices for this customer
    last_used: int = 0  # Epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "customer_id": self.customer_id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "usage_count": self.usage_count,
            "last_used": self.last_used,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Customer":
        return cls(
            customer_id=str(data["customer_id"]),
            name=str(data["name"]),
            phone=_optional_str(data.get("phone")),
            address=_optional_str(data.get("address")),
            usage_count=int(data.get("usage_count", 0)),
            last_used=int(data.get("last_used", 0)),
        )


@dataclass(slots=True)
class Product:
    """A reusable catalog entry, entered locally or synced from the sheet."""

    product_id: str
    name: str
    price: float  # Unit price, never negative
    unit: str  # e.g., "kg", "piece", "liter"
    default_quantity: Optional[float] = None  # e.g., 0.5 for milk
    usage_count: int = 0  # Used to sort by frequency
    from_catalog_sync: bool = False  # True for rows parsed from the remote sheet

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": self.price,
            "unit": self.unit,
            "default_quantity": self.default_quantity,
            "usage_count": self.usage_count,
            "from_catalog_sync": self.from_catalog_sync,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        default_quantity = data.get("default_quantity")
        return cls(
            product_id=str(data["product_id"]),
            name=str(data["name"]),
            price=float(data["price"]),
            unit=str(data.get("unit") or ""),
            default_quantity=(
                float(default_quantity) if default_quantity is not None else None
            ),
            usage_count=int(data.get("usage_count", 0)),
            from_catalog_sync=bool(data.get("from_catalog_sync", False)),
        )


@dataclass(slots=True)
class LineItem:
    """One invoice row.

    ``product_name``, ``unit_price`` and ``unit`` are snapshots taken when the
    row is entered; they do not follow later changes to the catalog product.
    """

    item_id: str
    product_name: str
    unit_price: float
    quantity: float
    unit: str

    @property
    def amount(self) -> float:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "product_name": self.product_name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "unit": self.unit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(
            item_id=str(data["item_id"]),
            product_name=str(data["product_name"]),
            unit_price=float(data["unit_price"]),
            quantity=float(data["quantity"]),
            unit=str(data.get("unit") or ""),
        )


def calculate_subtotal(line_items: List[LineItem]) -> float:
    return sum(item.unit_price * item.quantity for item in line_items)


def calculate_total(line_items: List[LineItem]) -> float:
    # Flat sum; kept separate from the subtotal for future tax/discount steps
    return calculate_subtotal(line_items)


@dataclass(slots=True)
class Invoice:
    """An invoice, either the single open draft or a finalized history entry."""

    invoice_id: str
    customer_id: str = ""  # Empty until a customer is selected
    customer_name: str = ""  # Snapshot
    customer_phone: Optional[str] = None  # Snapshot
    customer_address: Optional[str] = None  # Snapshot
    line_items: List[LineItem] = field(default_factory=list)  # Entry order
    subtotal: float = 0.0  # Derived
    total: float = 0.0  # Derived
    created_at: int = 0  # Epoch milliseconds
    is_draft: bool = True
    document: Optional[str] = None  # Base64 PDF once finalized

    @classmethod
    def new_draft(cls, created_at: Optional[int] = None) -> "Invoice":
        return cls(
            invoice_id=new_id(),
            created_at=created_at if created_at is not None else now_ms(),
        )

    @property
    def has_customer(self) -> bool:
        return bool(self.customer_id)

    @property
    def number(self) -> str:
        """Short human-readable invoice number."""
        return self.invoice_id[:8].upper()

    def recalculate(self) -> None:
        self.subtotal = calculate_subtotal(self.line_items)
        self.total = calculate_total(self.line_items)

    def find_item(self, item_id: str) -> Optional[LineItem]:
        for item in self.line_items:
            if item.item_id == item_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "line_items": [item.to_dict() for item in self.line_items],
            "subtotal": self.subtotal,
            "total": self.total,
            "created_at": self.created_at,
            "is_draft": self.is_draft,
            "document": self.document,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Invoice":
        invoice = cls(
            invoice_id=str(data["invoice_id"]),
            customer_id=str(data.get("customer_id") or ""),
            customer_name=str(data.get("customer_name") or ""),
            customer_phone=_optional_str(data.get("customer_phone")),
            customer_address=_optional_str(data.get("customer_address")),
            line_items=[LineItem.from_dict(item) for item in data.get("line_items", [])],
            created_at=int(data.get("created_at", 0)),
            is_draft=bool(data.get("is_draft", True)),
            document=data.get("document"),
        )
        invoice.recalculate()  # Stored totals are derived; never trust them
        return invoice


@dataclass(slots=True)
class MerchantConfig:
    """Business details printed on every invoice."""

    business_name: str = ""
    address1: str = ""
    address2: str = ""
    phone: str = ""
    email: Optional[str] = None
    tax_id: Optional[str] = None  # Printed as "GST: ..."
    catalog_source_id: Optional[str] = None  # Remote sheet id or CSV URL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "business_name": self.business_name,
            "address1": self.address1,
            "address2": self.address2,
            "phone": self.phone,
            "email": self.email,
            "tax_id": self.tax_id,
            "catalog_source_id": self.catalog_source_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MerchantConfig":
        return cls(
            business_name=str(data.get("business_name") or ""),
            address1=str(data.get("address1") or ""),
            address2=str(data.get("address2") or ""),
            phone=str(data.get("phone") or ""),
            email=_optional_str(data.get("email")),
            tax_id=_optional_str(data.get("tax_id")),
            catalog_source_id=_optional_str(data.get("catalog_source_id")),
        )


@dataclass(slots=True)
class CacheEntry:
    """Last successfully fetched remote catalog."""

    products: List[Product]
    fetched_at: float  # Epoch seconds
    source_id: str  # Source the products were fetched for

    def to_dict(self) -> Dict[str, Any]:
        return {
            "products": [p.to_dict() for p in self.products],
            "fetched_at": self.fetched_at,
            "source_id": self.source_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            products=[Product.from_dict(p) for p in data["products"]],
            fetched_at=float(data["fetched_at"]),
            source_id=str(data["source_id"]),
        )


__all__ = [
    "CacheEntry",
    "Customer",
    "Invoice",
    "LineItem",
    "MerchantConfig",
    "Product",
    "calculate_subtotal",
    "calculate_total",
    "new_id",
    "now_ms",
]
