"""Error taxonomy for the invoice builder.

``FetchError`` and ``ParseError`` are recovered inside the catalog layer and
never reach callers of :meth:`CatalogSynchronizer.get_all_products`. The
remaining errors are surfaced to the caller, always without touching the draft.
"""

from __future__ import annotations


class InvoiceError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(InvoiceError):
    """Line-item or customer input rejected before any mutation."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field  # Input field the message belongs to


class FetchError(InvoiceError):
    """Remote catalog unreachable or answered with a non-2xx status."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ParseError(InvoiceError):
    """A single catalog row could not be turned into a product."""

    def __init__(self, row_number: int, message: str) -> None:
        super().__init__(f"row {row_number}: {message}")
        self.row_number = row_number


class RenderError(InvoiceError):
    """Document generation failed; the draft is preserved for a retry."""


class DeliveryError(InvoiceError):
    """The share/download collaborator reported a failure."""


class InvalidTransition(InvoiceError):
    """An operation was requested from a state that does not allow it."""


__all__ = [
    "InvoiceError",
    "ValidationError",
    "FetchError",
    "ParseError",
    "RenderError",
    "DeliveryError",
    "InvalidTransition",
]
