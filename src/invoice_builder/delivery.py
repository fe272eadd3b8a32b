"""Hand-off of the rendered invoice to a share or download facility.

A sharer is any callable taking ``(document, filename, caption)`` and returning
a :class:`DeliveryOutcome`. Only a successful delivery finalizes the draft; a
cancel leaves everything as it was and a failure raises :class:`DeliveryError`
while keeping the rendered document for a retry.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from invoice_builder.errors import DeliveryError, InvalidTransition
from invoice_builder.model import Invoice
from invoice_builder.session import DraftSession, SessionState

logger = logging.getLogger(__name__)


class DeliveryOutcome(Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    FAILED = "failed"


Sharer = Callable[[bytes, str, str], DeliveryOutcome]


class DownloadSharer:
    """Writes the document into ``directory`` under the suggested filename."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self.last_path: Optional[Path] = None

    def __call__(self, document: bytes, filename: str, caption: str) -> DeliveryOutcome:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        try:
            path.write_bytes(document)
        except OSError as exc:
            logger.error("Could not save %s: %s", path, exc)
            return DeliveryOutcome.FAILED
        self.last_path = path
        return DeliveryOutcome.SUCCESS


async def deliver(session: DraftSession, sharer: Sharer) -> Optional[Invoice]:
    """Share the ready document; return the finalized invoice on success."""

    if session.state is not SessionState.READY_TO_SHARE or session.document is None:
        raise InvalidTransition("Generate the invoice before sharing it")

    try:
        outcome = sharer(session.document, session.suggested_filename(), session.share_caption())
    except Exception as exc:
        raise DeliveryError("Share failed. Try again.") from exc

    if outcome is DeliveryOutcome.CANCELLED:
        logger.info("Share cancelled; invoice %s stays ready", session.invoice.number)
        return None
    if outcome is not DeliveryOutcome.SUCCESS:
        raise DeliveryError("Share failed. Try again.")
    return await session.confirm_delivery()


__all__ = ["DeliveryOutcome", "DownloadSharer", "Sharer", "deliver"]
