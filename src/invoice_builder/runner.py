from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from invoice_builder import catalog_reader
from invoice_builder.catalog_sync import CatalogSynchronizer
from invoice_builder.config import DEFAULT_REPORT_NAME, default_data_dir
from invoice_builder.pdf_layout import render_invoice
from invoice_builder.report import (
    build_catalog_payload,
    build_error_payload,
    write_report_to_json,
)
from invoice_builder.repository import InvoiceRepository
from invoice_builder.storage import PersistentStore

logger = logging.getLogger(__name__)


def open_repository(data_dir: str | Path | None = None) -> InvoiceRepository:
    directory = Path(data_dir) if data_dir else default_data_dir()
    return InvoiceRepository(PersistentStore(directory))


def run_catalog_report(
    data_dir: str | Path | None = None,
    *,
    output_path: str | None = None,
) -> Path:
    """Synchronise the catalog and write the merged list to a JSON report."""

    report_path = Path(output_path) if output_path else Path(DEFAULT_REPORT_NAME)
    source_id: Optional[str] = None

    try:
        # 1. Load the stored merchant settings
        repository = open_repository(data_dir)
        config = repository.get_merchant_config()
        source_id = config.catalog_source_id

        # 2. Fetch (or reuse) the remote catalog and merge with local products
        synchronizer = CatalogSynchronizer(repository)
        products = asyncio.run(synchronizer.get_all_products(config))

        # 3. Write JSON report
        payload = build_catalog_payload(products, source_id)
    except Exception as exc:
        logger.exception("Catalog report failed")
        payload = build_error_payload(source_id, str(exc))

    return write_report_to_json(payload, report_path)


def run_catalog_import(workbook_path: str, data_dir: str | Path | None = None) -> int:
    """Import a catalog workbook as locally entered products."""

    candidates = catalog_reader.extract_catalog_workbook(Path(workbook_path))
    added = open_repository(data_dir).import_products(candidates)
    logger.info("Imported %d of %d products from %s", added, len(candidates), workbook_path)
    return added


def run_render_draft(output_path: str, data_dir: str | Path | None = None) -> Path:
    """Write a preview PDF of the current draft without finalizing it."""

    repository = open_repository(data_dir)
    draft = repository.get_draft()
    if draft is None:
        raise RuntimeError("No draft invoice to render")

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(render_invoice(draft, repository.get_merchant_config()))
    return path


__all__ = ["open_repository", "run_catalog_import", "run_catalog_report", "run_render_draft"]
