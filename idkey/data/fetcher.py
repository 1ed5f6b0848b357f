"""Dataset and record-filter retrieval with a local TTL cache in front."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from idkey.data.api_client import KeyApiClient
from idkey.data.cache import LocalCache
from idkey.models import CacheEntry, FullKey
from idkey.utils import now_epoch_ms

logger = logging.getLogger(__name__)


class KeyFetcher:
    """Retrieves the raw key data for a session.

    The dataset is served from ``cache`` while it is fresh. Cache reads and
    writes run in a worker thread so they do not block the event loop.
    """

    def __init__(
        self,
        client: KeyApiClient,
        cache: LocalCache,
        full_key_id: str = "full",
        clock: Callable[[], int] = now_epoch_ms,
    ) -> None:
        self.client = client
        self.cache = cache
        self.full_key_id = full_key_id
        self._clock = clock

    def is_full_key(self, key_id: str) -> bool:
        return key_id == self.full_key_id

    async def fetch_dataset(self, force_refresh: bool = False) -> FullKey:
        """Return the lead dataset, hitting the network only when the cache is stale."""
        now_ms = self._clock()
        if not force_refresh:
            entry = await asyncio.to_thread(self.cache.load_entry)
            if entry is not None and self.cache.is_fresh(entry, now_ms):
                logger.debug("Serving key dataset from cache (fetched at %d)", entry.fetched_at_ms)
                return entry.dataset

        dataset = await self.client.get_full_key()
        logger.info("Fetched key dataset: %d leads", len(dataset.key_data))

        try:
            await asyncio.to_thread(
                self.cache.store_entry,
                CacheEntry(dataset=dataset, fetched_at_ms=now_ms),
            )
        except OSError as exc:
            # Only future freshness is affected; the fetched data is still good
            logger.warning("Could not write key cache: %s", exc)
        return dataset

    async def fetch_record_filter(self, key_id: str) -> frozenset[int]:
        """Record ids selecting the paths of ``key_id``; empty for the full key."""
        if self.is_full_key(key_id):
            return frozenset()
        records = await self.client.get_key_records(key_id)
        logger.info("Fetched %d records for key '%s'", len(records), key_id)
        return frozenset(records)

    async def aclose(self) -> None:
        await self.client.aclose()
