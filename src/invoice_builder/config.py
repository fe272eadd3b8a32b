"""Static configuration for the invoice builder."""

from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "Invoice Builder"

DATA_DIR_ENV = "INVOICE_BUILDER_DATA_DIR"  # Overrides the default data directory

CACHE_TTL_SECONDS = 5 * 60  # Remote catalog is reused for five minutes
FETCH_TIMEOUT_SECONDS = 15.0
SHEET_EXPORT_URL = "https://docs.google.com/spreadsheets/d/{source_id}/export?format=csv"

RESET_DELAY_SECONDS = 0.3  # Pause between finalizing and starting the next draft

DEFAULT_REPORT_NAME = "catalog_report.json"
DEFAULT_UNIT = "piece"


def default_data_dir() -> Path:
    """Return the directory holding the persisted records."""

    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override)
    return Path.home() / ".invoice_builder"


__all__ = [
    "APP_NAME",
    "CACHE_TTL_SECONDS",
    "DATA_DIR_ENV",
    "DEFAULT_REPORT_NAME",
    "DEFAULT_UNIT",
    "FETCH_TIMEOUT_SECONDS",
    "RESET_DELAY_SECONDS",
    "SHEET_EXPORT_URL",
    "default_data_dir",
]
