"""Typed access to the records kept in the :class:`PersistentStore`.

Every method reads or writes a single store key. Records that fail to
deserialize are logged and skipped (lists) or replaced by their default
(single records).
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from invoice_builder.compare import find_by_name, sort_by_usage
from invoice_builder.model import (
    Customer,
    Invoice,
    MerchantConfig,
    Product,
    new_id,
    now_ms,
)
from invoice_builder.storage import PersistentStore, StoreKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RECORD_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


def _load_list(
    raw: Any, loader: Callable[[dict], T], label: str
) -> List[T]:
    if not isinstance(raw, list):
        if raw is not None:
            logger.warning("Expected a list of %s, found %s", label, type(raw).__name__)
        return []
    records: List[T] = []
    for entry in raw:
        try:
            records.append(loader(entry))
        except _RECORD_ERRORS as exc:
            logger.warning("Skipping corrupt %s record: %s", label, exc)
    return records


class InvoiceRepository:
    def __init__(self, store: PersistentStore, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self._clock = clock

    # Customers

    def get_customers(self) -> List[Customer]:
        raw = self.store.read(StoreKey.CUSTOMERS, [])
        return _load_list(raw, Customer.from_dict, "customer")

    def _save_customers(self, customers: Iterable[Customer]) -> None:
        self.store.write(StoreKey.CUSTOMERS, [c.to_dict() for c in customers])

    def find_customer(self, customer_id: str) -> Optional[Customer]:
        for customer in self.get_customers():
            if customer.customer_id == customer_id:
                return customer
        return None

    def save_customer(self, customer: Customer) -> None:
        customers = self.get_customers()
        for idx, existing in enumerate(customers):
            if existing.customer_id == customer.customer_id:
                customers[idx] = customer
                break
        else:
            customers.append(customer)
        self._save_customers(customers)

    def create_customer(
        self, name: str, phone: Optional[str] = None, address: Optional[str] = None
    ) -> Customer:
        customer = Customer(
            customer_id=new_id(),
            name=name.strip(),
            phone=(phone or "").strip() or None,
            address=(address or "").strip() or None,
            usage_count=0,
            last_used=self._clock(),
        )
        self.save_customer(customer)
        return customer

    def most_frequent_customers(self, limit: int = 5) -> List[Customer]:
        customers = sorted(
            self.get_customers(), key=lambda c: (c.usage_count, c.last_used), reverse=True
        )
        return customers[:limit]

    def search_customers(self, query: str, limit: int = 5) -> List[Customer]:
        """Filter the most frequent customers by name or phone substring.

        A blank query returns the most frequent customers unfiltered.
        """

        candidates = self.most_frequent_customers(limit)
        needle = query.strip()
        if not needle:
            return candidates
        lowered = needle.lower()
        return [
            c
            for c in candidates
            if lowered in c.name.lower() or (c.phone is not None and needle in c.phone)
        ]

    def increment_customer_usage(self, customer_id: str) -> None:
        customers = self.get_customers()
        for customer in customers:
            if customer.customer_id == customer_id:
                customer.usage_count += 1
                customer.last_used = self._clock()
                self._save_customers(customers)
                return
        logger.warning("Cannot bump usage of unknown customer %s", customer_id)

    # Products (locally entered)

    def get_products(self) -> List[Product]:
        raw = self.store.read(StoreKey.PRODUCTS, [])
        return _load_list(raw, Product.from_dict, "product")

    def _save_products(self, products: Iterable[Product]) -> None:
        self.store.write(StoreKey.PRODUCTS, [p.to_dict() for p in products])

    def save_product(self, product: Product) -> None:
        products = self.get_products()
        for idx, existing in enumerate(products):
            if existing.product_id == product.product_id:
                products[idx] = product
                break
        else:
            products.append(product)
        self._save_products(products)

    def products_by_usage(self) -> List[Product]:
        return sort_by_usage(self.get_products())

    def increment_product_usage(self, product_id: str) -> None:
        products = self.get_products()
        for product in products:
            if product.product_id == product_id:
                product.usage_count += 1
                self._save_products(products)
                return

    def record_product_usage(
        self,
        name: str,
        price: float,
        unit: str,
        catalog: Optional[Iterable[Product]] = None,
    ) -> Product:
        """Count a new line item against the catalog.

        ``catalog`` is the merged list the item was picked from. A name found
        there (case-insensitive) is a known product: a local one gets its usage
        bumped, a sheet product is left alone since it is rebuilt on every
        fetch. Local products are always searched as well. An unknown name
        becomes a locally entered product.
        """

        products = self.get_products()
        known = find_by_name(catalog, name) if catalog is not None else None
        if known is None:
            known = find_by_name(products, name)  # Entered since the catalog was loaded
        if known is not None and known.from_catalog_sync:
            return known
        if known is not None:
            for product in products:
                if product.product_id == known.product_id:
                    product.usage_count += 1
                    self._save_products(products)
                    return product

        product = Product(
            product_id=new_id(),
            name=name.strip(),
            price=price,
            unit=unit,
            usage_count=1,
        )
        products.append(product)
        self._save_products(products)
        return product

    def import_products(self, candidates: Iterable[Product]) -> int:
        """Add products whose names are not in the local catalog yet."""

        products = self.get_products()
        known = {p.name.lower() for p in products}
        added = 0
        for candidate in candidates:
            key = candidate.name.lower()
            if key in known:
                continue
            products.append(
                Product(
                    product_id=new_id(),
                    name=candidate.name,
                    price=candidate.price,
                    unit=candidate.unit,
                    default_quantity=candidate.default_quantity,
                    usage_count=0,
                    from_catalog_sync=False,
                )
            )
            known.add(key)
            added += 1
        if added:
            self._save_products(products)
        return added

    # Draft invoice

    def get_draft(self) -> Optional[Invoice]:
        raw = self.store.read(StoreKey.DRAFT_INVOICE, None)
        if raw is None:
            return None
        try:
            return Invoice.from_dict(raw)
        except _RECORD_ERRORS as exc:
            logger.warning("Discarding corrupt draft invoice: %s", exc)
            return None

    def save_draft(self, invoice: Invoice) -> None:
        self.store.write(StoreKey.DRAFT_INVOICE, invoice.to_dict())

    def clear_draft(self) -> None:
        self.store.remove(StoreKey.DRAFT_INVOICE)

    # Finalized invoices

    def get_invoices(self) -> List[Invoice]:
        raw = self.store.read(StoreKey.INVOICES, [])
        return _load_list(raw, Invoice.from_dict, "invoice")

    def append_invoice(self, invoice: Invoice) -> None:
        raw = self.store.read(StoreKey.INVOICES, [])
        if not isinstance(raw, list):
            raw = []
        raw.append(invoice.to_dict())
        self.store.write(StoreKey.INVOICES, raw)

    # Merchant configuration

    def get_merchant_config(self) -> MerchantConfig:
        raw = self.store.read(StoreKey.MERCHANT_CONFIG, None)
        if not isinstance(raw, dict):
            return MerchantConfig()
        try:
            return MerchantConfig.from_dict(raw)
        except _RECORD_ERRORS as exc:
            logger.warning("Using default merchant config: %s", exc)
            return MerchantConfig()

    def save_merchant_config(self, config: MerchantConfig) -> None:
        self.store.write(StoreKey.MERCHANT_CONFIG, config.to_dict())


__all__ = ["InvoiceRepository"]
