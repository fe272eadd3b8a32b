"""HTTP gateway for the remotely hosted catalog spreadsheet.

The catalog is a publicly shared spreadsheet exported as CSV. This module turns
a configured source identifier into a download URL and performs the GET,
translating every transport problem into :class:`FetchError`.
"""

from __future__ import annotations  # Enable postponed evaluation of annotations

import http.client  # HTTPException raised mid-response
import logging
import urllib.error  # HTTPError / URLError raised by urlopen
import urllib.parse
import urllib.request  # Blocking HTTP client; callers run it in a worker thread

from invoice_builder.config import APP_NAME, FETCH_TIMEOUT_SECONDS, SHEET_EXPORT_URL
from invoice_builder.errors import FetchError

logger = logging.getLogger(__name__)


def build_export_url(source_id: str) -> str:
    """Return the CSV download URL for ``source_id``.

    A full ``http(s)`` URL is used as-is; anything else is treated as a
    spreadsheet id.
    """
    source_id = source_id.strip()
    if source_id.startswith(("http://", "https://")):
        return source_id
    return SHEET_EXPORT_URL.format(source_id=urllib.parse.quote(source_id, safe=""))


def fetch_catalog_csv(source_id: str, timeout: float = FETCH_TIMEOUT_SECONDS) -> str:
    """Download the catalog CSV for ``source_id`` and return it as text."""

    url = build_export_url(source_id)
    logger.debug("Fetching catalog from %s", url)
    try:
        request = urllib.request.Request(
            url, method="GET", headers={"User-Agent": APP_NAME, "Accept": "text/csv"}
        )
        with urllib.request.urlopen(request, timeout=timeout) as resp:
            status = getattr(resp, "status", 200)
            if not 200 <= status < 300:
                raise FetchError(f"Catalog fetch returned HTTP {status}", status=status)
            charset = resp.headers.get_content_charset() or "utf-8"
            return resp.read().decode(charset, errors="replace")
    except urllib.error.HTTPError as exc:
        raise FetchError(f"Catalog fetch returned HTTP {exc.code}", status=exc.code) from exc
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        raise FetchError(f"Catalog fetch failed: {exc}") from exc
    except (http.client.HTTPException, ValueError, LookupError) as exc:
        # Malformed URL, truncated body or an unknown declared charset
        raise FetchError(f"Catalog fetch failed: {exc}") from exc


__all__ = ["build_export_url", "fetch_catalog_csv"]  # Public API


if __name__ == "__main__":  # pragma: no cover - manual invocation
    import sys

    try:
        print(fetch_catalog_csv(sys.argv[1]))
    except (IndexError, FetchError) as e:
        print(f"Error: {e}")
        sys.exit(1)
