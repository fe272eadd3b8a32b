"""Draft session: the lifecycle of the single open invoice.

The session is a small state machine. Every operation checks the current
:class:`SessionState` first, validates its input before touching the invoice,
and persists the invoice before returning, so a crash at any point leaves the
last completed step on disk.
"""

from __future__ import annotations

import asyncio
import base64
import copy
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from invoice_builder import compare
from invoice_builder.catalog_sync import CatalogSynchronizer
from invoice_builder.config import DEFAULT_UNIT, RESET_DELAY_SECONDS
from invoice_builder.errors import InvalidTransition, RenderError, ValidationError
from invoice_builder.model import (
    Customer,
    Invoice,
    LineItem,
    MerchantConfig,
    Product,
    new_id,
    now_ms,
)
from invoice_builder.pdf_layout import format_money, render_invoice
from invoice_builder.repository import InvoiceRepository

logger = logging.getLogger(__name__)

Renderer = Callable[[Invoice, MerchantConfig], bytes]


class SessionState(Enum):
    NO_DRAFT = "no_draft"
    CUSTOMER_PENDING = "customer_pending"
    ITEMS_EDITING = "items_editing"
    ITEM_EDITING_FORM = "item_editing_form"
    READY_TO_SHARE = "ready_to_share"
    FINALIZED = "finalized"


def _parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(slots=True)
class ItemPrefill:
    """Values the item form starts with after a catalog pick."""

    name: str
    price: float
    unit: str
    quantity: float  # Also the step for quantity +/- buttons


def prefill_from_product(product: Product) -> ItemPrefill:
    quantity = product.default_quantity or 1.0
    return ItemPrefill(
        name=product.name,
        price=product.price,
        unit=product.unit or DEFAULT_UNIT,
        quantity=quantity,
    )


def validate_item_input(
    name: Any, price: Any, quantity: Any, unit: Any = None
) -> Tuple[str, float, float, str]:
    """Return cleaned ``(name, price, quantity, unit)`` or raise :class:`ValidationError`."""

    clean_name = str(name or "").strip()
    if not clean_name:
        raise ValidationError("name", "Enter a product name")

    clean_price = _parse_number(price)
    if clean_price is None or clean_price < 0:
        raise ValidationError("price", "Price must be a number of zero or more")

    clean_quantity = _parse_number(quantity)
    if clean_quantity is None or clean_quantity <= 0:
        raise ValidationError("quantity", "Quantity must be greater than zero")

    clean_unit = str(unit or "").strip() or DEFAULT_UNIT
    return clean_name, clean_price, clean_quantity, clean_unit


class DraftSession:
    """Owns the open draft invoice and drives it through its states."""

    def __init__(
        self,
        repository: InvoiceRepository,
        renderer: Renderer = render_invoice,
        clock: Callable[[], int] = now_ms,
        reset_delay: float = RESET_DELAY_SECONDS,
    ) -> None:
        self.repository = repository
        self._renderer = renderer
        self._clock = clock
        self.reset_delay = reset_delay

        self.state = SessionState.NO_DRAFT
        self.invoice: Optional[Invoice] = None
        self.customer: Optional[Customer] = None
        self.document: Optional[bytes] = None  # Rendered PDF while ready to share
        self.editing_item_id: Optional[str] = None  # Set when the form edits a row
        self.catalog: List[Product] = []  # Merged catalog used for suggestions

    # Helpers

    def _require(self, action: str, *states: SessionState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Cannot {action} while {self.state.value}")

    def _persist(self) -> None:
        self.repository.save_draft(self.invoice)

    def _start_new_draft(self) -> None:
        self.invoice = Invoice.new_draft(self._clock())
        self.customer = None
        self.document = None
        self.editing_item_id = None
        self._persist()
        self.state = SessionState.CUSTOMER_PENDING

    # Lifecycle

    def initialize(self) -> SessionState:
        """Resume the persisted draft or start a new one."""

        self._require("initialize", SessionState.NO_DRAFT)
        draft = self.repository.get_draft()
        if draft is None:
            self._start_new_draft()
            logger.info("Started new draft %s", self.invoice.number)
            return self.state

        self.invoice = draft
        if draft.has_customer:
            customer = self.repository.find_customer(draft.customer_id)
            if customer is not None:
                self.customer = customer
                self.state = SessionState.ITEMS_EDITING
                logger.info("Resumed draft %s for %s", draft.number, customer.name)
                return self.state
            logger.warning(
                "Draft %s refers to unknown customer %s", draft.number, draft.customer_id
            )
        self.state = SessionState.CUSTOMER_PENDING
        return self.state

    def select_customer(self, customer: Customer) -> None:
        self._require("select a customer", SessionState.CUSTOMER_PENDING)
        invoice = self.invoice
        # Snapshot copies; later edits to the customer record do not leak in
        invoice.customer_id = str(customer.customer_id)
        invoice.customer_name = str(customer.name)
        invoice.customer_phone = customer.phone
        invoice.customer_address = customer.address
        self.customer = customer
        self._persist()
        self.state = SessionState.ITEMS_EDITING

    def create_customer(
        self, name: str, phone: Optional[str] = None, address: Optional[str] = None
    ) -> Customer:
        """Create a customer and select it in one step."""

        self._require("create a customer", SessionState.CUSTOMER_PENDING)
        if not (name or "").strip():
            raise ValidationError("name", "Enter a customer name")
        customer = self.repository.create_customer(name, phone, address)
        self.select_customer(customer)
        return customer

    def change_customer(self) -> None:
        self._require("change the customer", SessionState.ITEMS_EDITING)
        invoice = self.invoice
        invoice.customer_id = ""
        invoice.customer_name = ""
        invoice.customer_phone = None
        invoice.customer_address = None
        self.customer = None
        self._persist()
        self.state = SessionState.CUSTOMER_PENDING

    # Catalog

    async def refresh_catalog(
        self, synchronizer: CatalogSynchronizer, merchant: MerchantConfig
    ) -> List[Product]:
        """Load the merged catalog used for suggestions and usage counting."""
        self.catalog = await synchronizer.get_all_products(merchant)
        return self.catalog

    def suggest_products(self, query: str, limit: int = 5) -> List[Product]:
        return compare.suggest_products(self.catalog, query, limit)

    def select_catalog_product(self, product: Product) -> ItemPrefill:
        """Prefill the open item form from a catalog product."""
        self._require("pick a catalog product", SessionState.ITEM_EDITING_FORM)
        return prefill_from_product(product)

    # Line items

    def open_item_form(self, item_id: Optional[str] = None) -> Optional[LineItem]:
        """Enter the item form, for a new row or for the row ``item_id``."""

        self._require("open the item form", SessionState.ITEMS_EDITING)
        item = None
        if item_id is not None:
            item = self.invoice.find_item(item_id)
            if item is None:
                raise ValidationError("item_id", "Line item not found")
        self.editing_item_id = item_id
        self.state = SessionState.ITEM_EDITING_FORM
        return item

    def cancel_item_form(self) -> None:
        self._require("close the item form", SessionState.ITEM_EDITING_FORM)
        self.editing_item_id = None
        self.state = SessionState.ITEMS_EDITING

    def add_line_item(self, name: Any, price: Any, quantity: Any, unit: Any = None) -> LineItem:
        self._require("add a line item", SessionState.ITEM_EDITING_FORM)
        if self.editing_item_id is not None:
            raise InvalidTransition("The item form is editing an existing row")
        clean_name, clean_price, clean_quantity, clean_unit = validate_item_input(
            name, price, quantity, unit
        )

        item = LineItem(
            item_id=new_id(),
            product_name=clean_name,
            unit_price=clean_price,
            quantity=clean_quantity,
            unit=clean_unit,
        )
        self.invoice.line_items.append(item)
        self.invoice.recalculate()
        self._persist()
        product = self.repository.record_product_usage(
            clean_name, clean_price, clean_unit, catalog=self.catalog or None
        )
        if compare.find_by_name(self.catalog, product.name) is None:
            self.catalog.append(product)

        self.editing_item_id = None
        self.state = SessionState.ITEMS_EDITING
        return item

    def edit_line_item(
        self, item_id: str, name: Any, price: Any, quantity: Any, unit: Any = None
    ) -> LineItem:
        self._require("edit a line item", SessionState.ITEM_EDITING_FORM)
        if self.editing_item_id is not None and item_id != self.editing_item_id:
            raise InvalidTransition("The item form is editing a different row")
        clean_name, clean_price, clean_quantity, clean_unit = validate_item_input(
            name, price, quantity, unit
        )

        items = self.invoice.line_items
        for idx, existing in enumerate(items):
            if existing.item_id == item_id:
                break
        else:
            raise ValidationError("item_id", "Line item not found")

        # Replace the snapshot wholesale; position in the list is kept
        item = LineItem(
            item_id=item_id,
            product_name=clean_name,
            unit_price=clean_price,
            quantity=clean_quantity,
            unit=clean_unit,
        )
        items[idx] = item
        self.invoice.recalculate()
        self._persist()

        self.editing_item_id = None
        self.state = SessionState.ITEMS_EDITING
        return item

    def delete_line_item(self, item_id: str) -> None:
        self._require("delete a line item", SessionState.ITEMS_EDITING)
        items = self.invoice.line_items
        remaining = [item for item in items if item.item_id != item_id]
        if len(remaining) == len(items):
            return
        self.invoice.line_items = remaining
        self.invoice.recalculate()
        self._persist()

    # Finalization

    def request_finalize(self, merchant: MerchantConfig) -> bytes:
        """Render the document and move to ``READY_TO_SHARE``."""

        self._require("generate the invoice", SessionState.ITEMS_EDITING)
        if not self.invoice.has_customer or self.customer is None:
            raise InvalidTransition("Select a customer before generating the invoice")
        if not self.invoice.line_items:
            raise InvalidTransition("Add at least one item before generating the invoice")

        try:
            document = self._renderer(copy.deepcopy(self.invoice), merchant)
        except RenderError:
            logger.exception("Invoice generation failed")
            raise
        except Exception as exc:
            logger.exception("Invoice generation failed")
            raise RenderError("Couldn't generate invoice. Try again.") from exc

        self.document = document
        self.state = SessionState.READY_TO_SHARE
        return document

    async def confirm_delivery(self) -> Invoice:
        """Move the delivered invoice to history and start the next draft."""

        self._require("confirm delivery", SessionState.READY_TO_SHARE)
        finalized = copy.deepcopy(self.invoice)
        finalized.is_draft = False
        finalized.document = base64.b64encode(self.document).decode("ascii")

        self.repository.append_invoice(finalized)
        self.repository.increment_customer_usage(finalized.customer_id)
        self.repository.clear_draft()
        self.invoice = finalized
        self.state = SessionState.FINALIZED
        logger.info("Finalized invoice %s (total %.2f)", finalized.number, finalized.total)

        if self.reset_delay > 0:
            await asyncio.sleep(self.reset_delay)  # Let the UI settle
        self._start_new_draft()
        return finalized

    # Share metadata

    def suggested_filename(self) -> str:
        return f"invoice_{self.invoice.invoice_id}.pdf"

    def share_caption(self) -> str:
        invoice = self.invoice
        return (
            f"Hi {invoice.customer_name},\n\n"
            "Please find your invoice attached.\n\n"
            f"Total: {format_money(invoice.total)}\n\n"
            "Thank you for your business!"
        )


__all__ = [
    "DraftSession",
    "ItemPrefill",
    "SessionState",
    "prefill_from_product",
    "validate_item_input",
]
