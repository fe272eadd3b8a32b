"""Catalog synchronisation between the local product list and the remote sheet.

:class:`CatalogSynchronizer` owns a :class:`CatalogCache`, fetches the remote
CSV when the cache is stale, and merges both sources. Fetch failures degrade to
the last cached list for the same source (or to nothing) so callers always get
a usable catalog.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

from invoice_builder.catalog_reader import parse_catalog_csv
from invoice_builder.compare import merge_catalogs
from invoice_builder.config import CACHE_TTL_SECONDS
from invoice_builder.errors import FetchError
from invoice_builder.model import CacheEntry, MerchantConfig, Product
from invoice_builder.repository import InvoiceRepository
from invoice_builder.sheet_gateway import fetch_catalog_csv
from invoice_builder.storage import PersistentStore, StoreKey

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], str]  # source id -> CSV text, raises FetchError


def is_source_configured(config: MerchantConfig) -> bool:
    return bool((config.catalog_source_id or "").strip())


class CatalogCache:
    """Last fetched remote catalog, mirrored to the store when one is given."""

    def __init__(
        self,
        store: Optional[PersistentStore] = None,
        ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self.ttl = ttl
        self._clock = clock
        self.entry: Optional[CacheEntry] = self._load()

    def _load(self) -> Optional[CacheEntry]:
        if self._store is None:
            return None
        raw = self._store.read(StoreKey.CATALOG_CACHE, None)
        if raw is None:
            return None
        try:
            return CacheEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring corrupt catalog cache: %s", exc)
            return None

    def matches(self, source_id: str) -> bool:
        return self.entry is not None and self.entry.source_id == source_id

    def is_fresh(self, source_id: str) -> bool:
        if not self.matches(source_id):
            return False
        age = self._clock() - self.entry.fetched_at
        return 0 <= age < self.ttl

    def update(self, products: List[Product], source_id: str, fetched_at: float) -> CacheEntry:
        self.entry = CacheEntry(products=list(products), fetched_at=fetched_at, source_id=source_id)
        if self._store is not None:
            self._store.write(StoreKey.CATALOG_CACHE, self.entry.to_dict())
        return self.entry

    def clear(self) -> None:
        self.entry = None
        if self._store is not None:
            self._store.remove(StoreKey.CATALOG_CACHE)


class CatalogSynchronizer:
    def __init__(
        self,
        repository: InvoiceRepository,
        cache: Optional[CatalogCache] = None,
        fetcher: Optional[Fetcher] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repository = repository
        self.cache = cache if cache is not None else CatalogCache(repository.store, clock=clock)
        self._fetcher = fetcher or fetch_catalog_csv
        self._clock = clock

    async def get_all_products(self, config: MerchantConfig) -> List[Product]:
        """Return the merged catalog for ``config``; never raises on fetch errors."""

        if not is_source_configured(config):
            return [p for p in self.repository.products_by_usage() if not p.from_catalog_sync]

        source_id = config.catalog_source_id.strip()

        if self.cache.is_fresh(source_id):
            remote = list(self.cache.entry.products)
        else:
            remote = await self._refresh(source_id)

        # Local products are read after any suspension so new entries show up
        return merge_catalogs(remote, self.repository.products_by_usage())

    def invalidate_cache(self) -> None:
        """Drop the cached remote catalog; the next call fetches again."""
        logger.info("Catalog cache invalidated")
        self.cache.clear()

    async def _refresh(self, source_id: str) -> List[Product]:
        started_at = self._clock()
        try:
            text = await asyncio.to_thread(self._fetcher, source_id)
        except FetchError as exc:
            logger.warning("Using cached catalog after fetch failure: %s", exc)
            return self._fallback(source_id)
        except Exception:
            logger.exception("Unexpected catalog fetch error; using cached catalog")
            return self._fallback(source_id)

        try:
            products = parse_catalog_csv(text, source_id)
        except Exception:
            logger.exception("Could not parse catalog for %s; using cached catalog", source_id)
            return self._fallback(source_id)

        # Freshness is judged when the result lands, not when the call began
        entry = self.cache.entry
        if entry is not None and entry.fetched_at > started_at:
            if entry.source_id == source_id:
                logger.debug("Discarding catalog fetch superseded by a newer one")
                return list(entry.products)
            return products  # Newer entry belongs to another source; leave it

        self.cache.update(products, source_id, self._clock())
        logger.info("Fetched %d catalog products for %s", len(products), source_id)
        return products

    def _fallback(self, source_id: str) -> List[Product]:
        if self.cache.matches(source_id):
            return list(self.cache.entry.products)
        return []


__all__ = ["CatalogCache", "CatalogSynchronizer", "is_source_configured"]
