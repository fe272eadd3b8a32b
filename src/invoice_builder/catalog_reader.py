"""Catalog extraction from CSV text and Excel workbooks.

Both layouts share the column order ``Product Name, Price, Unit, Default
Quantity`` with a header row. Rows are validated one at a time: a malformed row
is dropped and the rest of the catalog is still returned.
"""

from __future__ import annotations

import csv  # Quoted-field aware CSV splitting
import io
import logging
import math
import uuid
from pathlib import Path  # Filesystem path management
from typing import Any, Iterable, List, Optional, Sequence

from openpyxl import load_workbook  # Excel file loader

from invoice_builder.errors import ParseError
from invoice_builder.model import Product, new_id

logger = logging.getLogger(__name__)

WORKSHEET_NAME = "products"


def _to_number(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or ``None`` if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None  # Reject "nan" and "inf"
    return number


def _cell_text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _product_id(source_id: str, name: str) -> str:
    # Same sheet and name always map to the same identity
    return uuid.uuid5(uuid.NAMESPACE_URL, f"{source_id}:{name.lower()}").hex


def parse_catalog_row(
    values: Sequence[Any],
    row_number: int,
    *,
    source_id: str = "",
    remote: bool = True,
) -> Product:
    """Build a product from one data row or raise :class:`ParseError`."""

    if len(values) < 3:
        raise ParseError(row_number, "expected name, price and unit")

    name = _cell_text(values[0])
    if not name:
        raise ParseError(row_number, "missing product name")

    price = _to_number(values[1])
    if price is None or price < 0:
        raise ParseError(row_number, f"invalid price {values[1]!r}")

    unit = _cell_text(values[2]).lower()
    if not unit:
        raise ParseError(row_number, "missing unit")

    default_quantity = _to_number(values[3]) if len(values) > 3 else None
    if default_quantity is not None and default_quantity <= 0:
        default_quantity = None  # Treated as absent, the row stays valid

    return Product(
        product_id=_product_id(source_id, name) if remote else new_id(),
        name=name,
        price=price,
        unit=unit,
        default_quantity=default_quantity,
        usage_count=0,
        from_catalog_sync=remote,
    )


def _parse_rows(
    rows: Iterable[Sequence[Any]], *, source_id: str, remote: bool
) -> List[Product]:
    products: List[Product] = []
    for row_number, row in enumerate(rows, start=1):
        if row_number == 1:
            continue  # Header row
        if not any(_cell_text(v) for v in row):
            continue  # Blank line
        try:
            products.append(
                parse_catalog_row(row, row_number, source_id=source_id, remote=remote)
            )
        except ParseError as exc:
            logger.debug("Dropping catalog row: %s", exc)
    return products


def parse_catalog_csv(text: str, source_id: str = "") -> List[Product]:
    """Return remote products parsed from a CSV export."""

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), skipinitialspace=True)
    return _parse_rows(reader, source_id=source_id, remote=True)


def extract_catalog_workbook(workbook_path: Path) -> List[Product]:
    """Return locally entered products read from an Excel workbook.

    Reads the ``products`` worksheet when present, otherwise the active one,
    and raises :class:`FileNotFoundError` if the workbook cannot be located.
    """

    workbook_path = Path(workbook_path)  # Ensure we have a Path instance
    if not workbook_path.exists():  # Validate the file exists
        raise FileNotFoundError(f"Workbook not found: {workbook_path}")

    # Open in read-only mode for performance and safety; use cell values only
    workbook = load_workbook(filename=workbook_path, read_only=True, data_only=True)
    try:
        if WORKSHEET_NAME in workbook.sheetnames:
            sheet = workbook[WORKSHEET_NAME]
        else:
            sheet = workbook.active
        if sheet is None:
            raise ValueError("Workbook has no worksheet to import")
        rows = sheet.iter_rows(values_only=True)  # Iterate rows as tuples of raw values
        return _parse_rows(rows, source_id=str(workbook_path), remote=False)
    finally:
        workbook.close()  # Always close the workbook handle


__all__ = ["extract_catalog_workbook", "parse_catalog_csv", "parse_catalog_row"]
