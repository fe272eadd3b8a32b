"""Tests for the draft session state machine and the delivery hand-off."""

import asyncio
import base64

import pytest

from invoice_builder.catalog_sync import CatalogSynchronizer
from invoice_builder.delivery import DeliveryOutcome, DownloadSharer, deliver
from invoice_builder.errors import (
    DeliveryError,
    InvalidTransition,
    RenderError,
    ValidationError,
)
from invoice_builder.model import Customer, MerchantConfig, Product
from invoice_builder.repository import InvoiceRepository
from invoice_builder.session import (
    DraftSession,
    ItemPrefill,
    SessionState,
    prefill_from_product,
    validate_item_input,
)
from invoice_builder.storage import PersistentStore

FAKE_PDF = b"%PDF-1.4 fake"


def fake_renderer(invoice, merchant):
    return FAKE_PDF


def assert_totals_consistent(invoice):
    expected = sum(item.unit_price * item.quantity for item in invoice.line_items)
    assert invoice.subtotal == invoice.total == expected


class TestDraftSession:
    """Lifecycle of the single open draft."""

    @pytest.fixture
    def repository(self, tmp_path):
        return InvoiceRepository(PersistentStore(tmp_path))

    @pytest.fixture
    def session(self, repository):
        session = DraftSession(repository, renderer=fake_renderer, reset_delay=0)
        session.initialize()
        return session

    @pytest.fixture
    def editing(self, session):
        """Session with a customer selected, ready for items."""
        session.create_customer("Asha", phone="98765", address="12 Lake Road")
        return session

    def add(self, session, name, price, quantity, unit="piece"):
        session.open_item_form()
        return session.add_line_item(name, price, quantity, unit)

    def test_initialize_without_draft_creates_one(self, session, repository):
        assert session.state is SessionState.CUSTOMER_PENDING
        draft = repository.get_draft()
        assert draft == session.invoice
        assert draft.line_items == []
        assert draft.subtotal == draft.total == 0
        assert draft.is_draft

    def test_initialize_resumes_draft_without_customer(self, session, repository):
        resumed = DraftSession(repository, renderer=fake_renderer)
        assert resumed.initialize() is SessionState.CUSTOMER_PENDING
        assert resumed.invoice.invoice_id == session.invoice.invoice_id

    def test_initialize_resumes_items_editing(self, editing, repository):
        self.add(editing, "Paneer", 500, 1, "kg")
        resumed = DraftSession(repository, renderer=fake_renderer)
        assert resumed.initialize() is SessionState.ITEMS_EDITING
        assert resumed.invoice == editing.invoice
        assert resumed.customer.name == "Asha"

    def test_initialize_with_unknown_customer_keeps_draft(self, editing, repository):
        self.add(editing, "Paneer", 500, 1, "kg")
        repository.store.remove("customers")
        resumed = DraftSession(repository, renderer=fake_renderer)
        assert resumed.initialize() is SessionState.CUSTOMER_PENDING
        assert len(resumed.invoice.line_items) == 1

    def test_initialize_twice_rejected(self, session):
        with pytest.raises(InvalidTransition):
            session.initialize()

    def test_select_customer_snapshots_details(self, session, repository):
        customer = Customer("c1", "Ravi", phone="111", address="Main St")
        repository.save_customer(customer)
        session.select_customer(customer)
        customer.name = "Ravi Kumar"
        assert session.state is SessionState.ITEMS_EDITING
        assert session.invoice.customer_name == "Ravi"
        assert repository.get_draft().customer_phone == "111"

    def test_select_customer_only_when_pending(self, editing):
        with pytest.raises(InvalidTransition):
            editing.select_customer(Customer("c2", "Other"))

    def test_create_customer_requires_name(self, session):
        with pytest.raises(ValidationError) as info:
            session.create_customer("   ")
        assert info.value.field == "name"
        assert session.state is SessionState.CUSTOMER_PENDING

    def test_example_invoice_totals(self, editing):
        self.add(editing, "Paneer", 500, 1, "kg")
        self.add(editing, "Milk", 50, 0.5, "liter")
        assert editing.invoice.subtotal == editing.invoice.total == 525.00
        assert editing.state is SessionState.ITEMS_EDITING

    def test_add_rejects_negative_price(self, editing, repository):
        self.add(editing, "Paneer", 500, 1, "kg")
        editing.open_item_form()
        with pytest.raises(ValidationError) as info:
            editing.add_line_item("Curd", "-5", 1, "kg")
        assert info.value.field == "price"
        assert len(editing.invoice.line_items) == 1
        assert len(repository.get_draft().line_items) == 1
        assert editing.state is SessionState.ITEM_EDITING_FORM

    @pytest.mark.parametrize(
        "name, price, quantity, field",
        [
            ("  ", 10, 1, "name"),
            ("Curd", "abc", 1, "price"),
            ("Curd", float("nan"), 1, "price"),
            ("Curd", float("inf"), 1, "price"),
            ("Curd", 10, 0, "quantity"),
            ("Curd", 10, "-1", "quantity"),
            ("Curd", 10, None, "quantity"),
        ],
    )
    def test_validation_rules(self, name, price, quantity, field):
        with pytest.raises(ValidationError) as info:
            validate_item_input(name, price, quantity, "kg")
        assert info.value.field == field

    def test_validation_accepts_numeric_strings(self):
        assert validate_item_input(" Milk ", "50", "0.5", "") == ("Milk", 50.0, 0.5, "piece")

    def test_add_requires_item_form(self, editing):
        with pytest.raises(InvalidTransition):
            editing.add_line_item("Paneer", 500, 1, "kg")

    def test_add_updates_catalog_usage(self, editing, repository):
        repository.save_product(Product("p1", "paneer", 480.0, "kg", usage_count=2))
        self.add(editing, "Paneer", 500, 1, "kg")
        self.add(editing, "Cream", 60, 1, "piece")
        products = {p.name: p for p in repository.get_products()}
        assert products["paneer"].usage_count == 3
        assert products["Cream"].usage_count == 1
        assert not products["Cream"].from_catalog_sync

    def test_cancel_item_form_keeps_invoice(self, editing):
        self.add(editing, "Paneer", 500, 1, "kg")
        editing.open_item_form()
        editing.cancel_item_form()
        assert editing.state is SessionState.ITEMS_EDITING
        assert len(editing.invoice.line_items) == 1

    def test_edit_replaces_in_place_without_usage(self, editing, repository):
        first = self.add(editing, "Paneer", 500, 1, "kg")
        second = self.add(editing, "Milk", 50, 0.5, "liter")
        usage_before = {p.name: p.usage_count for p in repository.get_products()}

        editing.open_item_form(second.item_id)
        editing.edit_line_item(second.item_id, "Milk", 55, 2, "liter")

        items = editing.invoice.line_items
        assert [i.item_id for i in items] == [first.item_id, second.item_id]
        assert items[1].unit_price == 55
        assert items[0].product_name == "Paneer" and items[0].unit_price == 500
        assert_totals_consistent(editing.invoice)
        assert editing.invoice.total == 610
        assert {p.name: p.usage_count for p in repository.get_products()} == usage_before
        assert repository.get_draft().line_items[1].quantity == 2

    def test_edit_unknown_item_rejected(self, editing):
        self.add(editing, "Paneer", 500, 1, "kg")
        with pytest.raises(ValidationError):
            editing.open_item_form("missing")
        editing.open_item_form()
        with pytest.raises(ValidationError):
            editing.edit_line_item("missing", "Paneer", 1, 1, "kg")

    def test_snapshots_ignore_catalog_changes(self, editing, repository):
        item = self.add(editing, "Paneer", 500, 1, "kg")
        product = repository.get_products()[0]
        product.price = 999.0
        product.name = "Renamed"
        repository.save_product(product)
        stored = editing.invoice.find_item(item.item_id)
        assert stored.product_name == "Paneer"
        assert stored.unit_price == 500

    def test_delete_and_noop_delete(self, editing, repository):
        first = self.add(editing, "Paneer", 500, 1, "kg")
        self.add(editing, "Milk", 50, 0.5, "liter")
        editing.delete_line_item("missing")
        assert len(editing.invoice.line_items) == 2
        editing.delete_line_item(first.item_id)
        assert [i.product_name for i in editing.invoice.line_items] == ["Milk"]
        assert editing.invoice.total == 25
        assert repository.get_draft().total == 25

    def test_totals_hold_across_mutations(self, editing):
        items = [self.add(editing, f"Item {n}", n * 1.1, n / 3, "kg") for n in range(1, 8)]
        assert_totals_consistent(editing.invoice)
        editing.open_item_form(items[2].item_id)
        editing.edit_line_item(items[2].item_id, "Changed", 7.77, 3, "kg")
        assert_totals_consistent(editing.invoice)
        for item in items[::2]:
            editing.delete_line_item(item.item_id)
            assert_totals_consistent(editing.invoice)

    def test_change_customer_keeps_items(self, editing, repository):
        self.add(editing, "Paneer", 500, 1, "kg")
        editing.change_customer()
        assert editing.state is SessionState.CUSTOMER_PENDING
        draft = repository.get_draft()
        assert draft.customer_id == "" and draft.customer_name == ""
        assert len(draft.line_items) == 1

    def test_finalize_requires_items(self, editing):
        with pytest.raises(InvalidTransition):
            editing.request_finalize(MerchantConfig())
        assert editing.state is SessionState.ITEMS_EDITING

    def test_finalize_requires_editing_state(self, session):
        with pytest.raises(InvalidTransition):
            session.request_finalize(MerchantConfig())

    def test_render_failure_preserves_draft(self, repository):
        def broken_renderer(invoice, merchant):
            raise ValueError("boom")

        session = DraftSession(repository, renderer=broken_renderer, reset_delay=0)
        session.initialize()
        session.create_customer("Asha")
        self.add(session, "Paneer", 500, 1, "kg")

        with pytest.raises(RenderError):
            session.request_finalize(MerchantConfig())
        assert session.state is SessionState.ITEMS_EDITING
        assert session.document is None
        assert len(repository.get_draft().line_items) == 1

    def test_finalize_and_confirm_delivery(self, editing, repository):
        self.add(editing, "Paneer", 500, 1, "kg")
        invoice_id = editing.invoice.invoice_id
        customer_id = editing.customer.customer_id

        assert editing.request_finalize(MerchantConfig()) == FAKE_PDF
        assert editing.state is SessionState.READY_TO_SHARE

        finalized = asyncio.run(editing.confirm_delivery())
        assert finalized.invoice_id == invoice_id
        assert not finalized.is_draft
        assert base64.b64decode(finalized.document) == FAKE_PDF

        history = repository.get_invoices()
        assert [i.invoice_id for i in history] == [invoice_id]
        assert repository.find_customer(customer_id).usage_count == 1

        assert editing.state is SessionState.CUSTOMER_PENDING
        new_draft = repository.get_draft()
        assert new_draft.invoice_id != invoice_id
        assert new_draft.line_items == [] and new_draft.is_draft
        assert editing.invoice == new_draft

    def test_confirm_delivery_requires_ready_state(self, editing):
        with pytest.raises(InvalidTransition):
            asyncio.run(editing.confirm_delivery())

    def test_share_metadata(self, editing):
        self.add(editing, "Paneer", 500, 1, "kg")
        assert editing.suggested_filename() == f"invoice_{editing.invoice.invoice_id}.pdf"
        assert "Total: Rs. 500.00" in editing.share_caption()
        assert editing.share_caption().startswith("Hi Asha,")


class TestCatalogInForm:
    """Suggestions, prefill and usage counting against the merged catalog."""

    @pytest.fixture
    def repository(self, tmp_path):
        return InvoiceRepository(PersistentStore(tmp_path))

    @pytest.fixture
    def editing(self, repository):
        session = DraftSession(repository, renderer=fake_renderer, reset_delay=0)
        session.initialize()
        session.create_customer("Asha")
        return session

    def load_catalog(self, session, repository, csv_text):
        sync = CatalogSynchronizer(repository, fetcher=lambda source_id: csv_text)
        config = MerchantConfig(catalog_source_id="sheet1")
        return asyncio.run(session.refresh_catalog(sync, config))

    def test_refresh_catalog_and_suggestions(self, editing, repository):
        repository.save_product(Product("l1", "Paneer Tikka", 250.0, "plate"))
        catalog = self.load_catalog(
            editing, repository, "Name,Price,Unit,Qty\nPaneer,500,kg,0.5\nMilk,50,liter\n"
        )
        assert [p.name for p in catalog] == ["Paneer", "Milk", "Paneer Tikka"]
        assert [p.name for p in editing.suggest_products("PANEER")] == ["Paneer", "Paneer Tikka"]
        assert editing.suggest_products("  ") == []
        assert len(editing.suggest_products("e", limit=1)) == 1

    def test_select_catalog_product_prefills_form(self, editing, repository):
        catalog = self.load_catalog(
            editing, repository, "Name,Price,Unit,Qty\nPaneer,500,kg,0.5\nMilk,50,liter\n"
        )
        editing.open_item_form()
        paneer = editing.select_catalog_product(catalog[0])
        assert paneer == ItemPrefill(name="Paneer", price=500.0, unit="kg", quantity=0.5)
        assert editing.select_catalog_product(catalog[1]).quantity == 1.0

    def test_select_catalog_product_requires_form(self, editing):
        with pytest.raises(InvalidTransition):
            editing.select_catalog_product(Product("p", "Milk", 50.0, "liter"))

    def test_prefill_defaults_unit(self):
        prefill = prefill_from_product(Product("p", "Bag", 10.0, "", default_quantity=None))
        assert prefill.unit == "piece"
        assert prefill.quantity == 1.0

    def test_sheet_product_does_not_create_local_copy(self, editing, repository):
        self.load_catalog(editing, repository, "Name,Price,Unit\nPaneer,500,kg\n")
        editing.open_item_form()
        editing.add_line_item("paneer", 500, 1, "kg")
        assert repository.get_products() == []

    def test_new_product_joins_catalog_once(self, editing, repository):
        self.load_catalog(editing, repository, "Name,Price,Unit\nPaneer,500,kg\n")
        for _ in range(2):
            editing.open_item_form()
            editing.add_line_item("Curd", 40, 1, "kg")

        products = repository.get_products()
        assert [(p.name, p.usage_count) for p in products] == [("Curd", 2)]
        assert [p.name for p in editing.suggest_products("cu")] == ["Curd"]


class TestItemFormTarget:
    """The item form only saves into the row it was opened for."""

    @pytest.fixture
    def editing(self, tmp_path):
        repository = InvoiceRepository(PersistentStore(tmp_path))
        session = DraftSession(repository, renderer=fake_renderer, reset_delay=0)
        session.initialize()
        session.create_customer("Asha")
        for name in ("Paneer", "Milk"):
            session.open_item_form()
            session.add_line_item(name, 50, 1, "kg")
        return session

    def test_edit_other_row_rejected(self, editing):
        first, second = editing.invoice.line_items
        editing.open_item_form(first.item_id)
        with pytest.raises(InvalidTransition):
            editing.edit_line_item(second.item_id, "Curd", 10, 1, "kg")
        assert editing.invoice.line_items[1].product_name == "Milk"
        assert editing.state is SessionState.ITEM_EDITING_FORM

    def test_add_while_editing_row_rejected(self, editing):
        first = editing.invoice.line_items[0]
        editing.open_item_form(first.item_id)
        with pytest.raises(InvalidTransition):
            editing.add_line_item("Curd", 10, 1, "kg")
        assert len(editing.invoice.line_items) == 2

    def test_cancel_releases_row(self, editing):
        first = editing.invoice.line_items[0]
        editing.open_item_form(first.item_id)
        editing.cancel_item_form()
        editing.open_item_form()
        editing.add_line_item("Curd", 10, 1, "kg")
        assert len(editing.invoice.line_items) == 3


class TestDelivery:
    """Outcomes reported by the share/download collaborator."""

    @pytest.fixture
    def ready(self, tmp_path):
        repository = InvoiceRepository(PersistentStore(tmp_path / "data"))
        session = DraftSession(repository, renderer=fake_renderer, reset_delay=0)
        session.initialize()
        session.create_customer("Asha")
        session.open_item_form()
        session.add_line_item("Paneer", 500, 1, "kg")
        session.request_finalize(MerchantConfig())
        return session

    def test_cancel_is_noop(self, ready):
        result = asyncio.run(deliver(ready, lambda doc, name, caption: DeliveryOutcome.CANCELLED))
        assert result is None
        assert ready.state is SessionState.READY_TO_SHARE
        assert ready.document == FAKE_PDF

    def test_failure_keeps_document(self, ready):
        with pytest.raises(DeliveryError):
            asyncio.run(deliver(ready, lambda doc, name, caption: DeliveryOutcome.FAILED))
        assert ready.state is SessionState.READY_TO_SHARE
        assert ready.document == FAKE_PDF

    def test_sharer_exception_becomes_delivery_error(self, ready):
        def exploding(doc, name, caption):
            raise OSError("share sheet crashed")

        with pytest.raises(DeliveryError):
            asyncio.run(deliver(ready, exploding))
        assert ready.state is SessionState.READY_TO_SHARE

    def test_download_success_finalizes(self, ready, tmp_path):
        sharer = DownloadSharer(tmp_path / "downloads")
        filename = ready.suggested_filename()
        finalized = asyncio.run(deliver(ready, sharer))
        assert finalized is not None and not finalized.is_draft
        assert sharer.last_path == tmp_path / "downloads" / filename
        assert sharer.last_path.read_bytes() == FAKE_PDF
        assert ready.state is SessionState.CUSTOMER_PENDING

    def test_deliver_before_generate_rejected(self, tmp_path):
        repository = InvoiceRepository(PersistentStore(tmp_path))
        session = DraftSession(repository, renderer=fake_renderer, reset_delay=0)
        session.initialize()
        with pytest.raises(InvalidTransition):
            asyncio.run(deliver(session, DownloadSharer(tmp_path)))
