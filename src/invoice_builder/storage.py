"""Durable key/value store backed by one JSON file per key.

Reads of missing, empty or corrupt files return the caller's default so a
damaged record never crashes the application. Writes go to a temporary file
that atomically replaces the target, so a read right after a write observes
the new value.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class StoreKey:
    """Logical record names used by the application."""

    CUSTOMERS = "customers"
    PRODUCTS = "products"
    DRAFT_INVOICE = "draft_invoice"
    INVOICES = "invoices"
    MERCHANT_CONFIG = "merchant_config"
    CATALOG_CACHE = "catalog_cache"


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class PersistentStore:
    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _file_path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.directory / f"{key}.json"

    def read(self, key: str, default: Any = None) -> Any:
        path = self._file_path(key)
        if not path.exists():
            return default  # First run for this record
        try:
            text = path.read_text(encoding="utf-8").strip()
            if not text:
                return default
            return json.loads(text)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable record %r: %s", key, exc)
            return default

    def write(self, key: str, value: Any) -> None:
        path = self._file_path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError as exc:
            # Callers do not wait on writes; report and keep the old record
            logger.error("Failed to save record %r: %s", key, exc)
            tmp.unlink(missing_ok=True)

    def remove(self, key: str) -> None:
        self._file_path(key).unlink(missing_ok=True)


__all__ = ["PersistentStore", "StoreKey"]
