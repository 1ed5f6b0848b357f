"""JSON-backed local cache for the key dataset.

Holds two named stores: the dataset snapshot (``fullKey`` / ``currentKey``)
and the time it was fetched (``lastFetch`` / ``fullKeyFetch``). Entries are
overwritten by newer fetches and never deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from idkey.models import CacheEntry, FullKey

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

DATASET_STORE = "fullKey"
DATASET_KEY = "currentKey"
TIMESTAMP_STORE = "lastFetch"
TIMESTAMP_KEY = "fullKeyFetch"

DEFAULT_TTL = timedelta(hours=24)


class LocalCache:
    """Key/value stores persisted as one JSON file, with a freshness policy.

    With ``path=None`` the stores live in memory only.
    """

    def __init__(self, path: Path | str | None = None, ttl: timedelta = DEFAULT_TTL) -> None:
        self._path = Path(path) if path else None
        self.ttl = ttl
        self._stores: dict[str, dict[str, Any]] = {}

    @property
    def path(self) -> Path | None:
        return self._path

    # -- Stores ---------------------------------------------------------------

    def get(self, store: str, key: str) -> Any | None:
        """Read one value, or None if the store or key is missing."""
        return self._read().get(store, {}).get(key)

    def put(self, store: str, key: str, value: Any) -> None:
        """Write one value. Raises OSError if the cache file cannot be written."""
        stores = self._read()
        stores.setdefault(store, {})[key] = value
        self._write(stores)

    # -- Dataset entry ----------------------------------------------------------

    def load_entry(self) -> CacheEntry | None:
        """Return the cached dataset with its fetch time, if both are stored."""
        dataset = self.get(DATASET_STORE, DATASET_KEY)
        fetched_at = self.get(TIMESTAMP_STORE, TIMESTAMP_KEY)
        if dataset is None or fetched_at is None:
            return None
        try:
            return CacheEntry(
                dataset=FullKey.model_validate(dataset),
                fetched_at_ms=fetched_at,
            )
        except ValidationError as exc:
            logger.warning("Ignoring invalid cached dataset: %s", exc)
            return None

    def store_entry(self, entry: CacheEntry) -> None:
        """Overwrite both stores in a single write."""
        stores = self._read()
        stores.setdefault(DATASET_STORE, {})[DATASET_KEY] = entry.dataset.model_dump(
            mode="json", by_alias=True
        )
        stores.setdefault(TIMESTAMP_STORE, {})[TIMESTAMP_KEY] = entry.fetched_at_ms
        self._write(stores)

    def is_fresh(self, entry: CacheEntry, now_ms: int) -> bool:
        """True while the entry is younger than the TTL."""
        ttl_ms = int(self.ttl.total_seconds() * 1000)
        return now_ms - entry.fetched_at_ms < ttl_ms

    # -- Persistence ----------------------------------------------------------

    def _read(self) -> dict[str, dict[str, Any]]:
        if self._path is None:
            return {name: dict(values) for name, values in self._stores.items()}
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Unreadable cache file %s: %s", self._path, exc)
            return {}
        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            logger.warning("Ignoring cache file %s with unknown layout", self._path)
            return {}
        stores = data.get("stores", {})
        if not isinstance(stores, dict):
            logger.warning("Ignoring cache file %s with unknown layout", self._path)
            return {}
        malformed = [name for name, values in stores.items() if not isinstance(values, dict)]
        if malformed:
            logger.warning("Ignoring malformed cache stores %s in %s", malformed, self._path)
        return {name: values for name, values in stores.items() if isinstance(values, dict)}

    def _write(self, stores: dict[str, dict[str, Any]]) -> None:
        if self._path is None:
            self._stores = stores
            return
        data = {"version": CACHE_VERSION, "stores": stores}
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f)
