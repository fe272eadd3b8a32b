"""Offline invoice builder.

Exposes the draft session, catalog synchroniser and PDF renderer for
programmatic use.
"""

from .catalog_sync import CatalogCache, CatalogSynchronizer  # Remote + local catalog
from .delivery import DeliveryOutcome, DownloadSharer, deliver  # Share hand-off
from .pdf_layout import render_invoice  # Invoice PDF
from .repository import InvoiceRepository  # Typed record access
from .session import DraftSession, SessionState  # Draft lifecycle
from .storage import PersistentStore  # Key/value persistence

__all__ = [
    "CatalogCache",
    "CatalogSynchronizer",
    "DeliveryOutcome",
    "DownloadSharer",
    "DraftSession",
    "InvoiceRepository",
    "PersistentStore",
    "SessionState",
    "deliver",
    "render_invoice",
]  # Re-exported symbols
