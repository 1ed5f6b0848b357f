"""Tests for the local cache, the HTTP client and KeyFetcher.

All tests use httpx.MockTransport or unittest.mock - no real HTTP calls are made.
"""

from __future__ import annotations

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from idkey.data import KeyApiClient, KeyFetcher, LocalCache, build_fetcher
from idkey.data.cache import DATASET_KEY, DATASET_STORE, TIMESTAMP_KEY, TIMESTAMP_STORE
from idkey.models import CacheEntry, FullKey
from idkey.settings import IdKeySettings
from idkey.utils import TransportError
from tests.conftest import run

HOUR_MS = 60 * 60 * 1000
MINUTE_MS = 60 * 1000
T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, now_ms: int = T0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


def _mock_client(full_key: FullKey, records: list[int] | None = None) -> MagicMock:
    client = MagicMock()
    client.get_full_key = AsyncMock(return_value=full_key)
    client.get_key_records = AsyncMock(return_value=records or [])
    client.aclose = AsyncMock()
    return client


# ---------------------------------------------------------------------------
# 1. LocalCache
# ---------------------------------------------------------------------------
class TestLocalCache:
    def test_missing_file_is_empty(self, tmp_path):
        cache = LocalCache(tmp_path / "cache.json")
        assert cache.load_entry() is None
        assert cache.get(DATASET_STORE, DATASET_KEY) is None

    def test_store_and_load_entry(self, tmp_path, sample_full_key):
        cache = LocalCache(tmp_path / "cache.json")
        cache.store_entry(CacheEntry(dataset=sample_full_key, fetched_at_ms=T0))
        entry = cache.load_entry()
        assert entry.fetched_at_ms == T0
        assert entry.dataset == sample_full_key

    def test_persists_across_instances(self, tmp_path, sample_full_key):
        path = tmp_path / "nested" / "cache.json"
        LocalCache(path).store_entry(CacheEntry(dataset=sample_full_key, fetched_at_ms=T0))
        assert LocalCache(path).load_entry().dataset == sample_full_key

    def test_file_uses_wire_names(self, tmp_path, sample_full_key):
        path = tmp_path / "cache.json"
        LocalCache(path).store_entry(CacheEntry(dataset=sample_full_key, fetched_at_ms=T0))
        data = json.loads(path.read_text())
        assert data["version"] == 1
        assert data["stores"][TIMESTAMP_STORE][TIMESTAMP_KEY] == T0
        first = data["stores"][DATASET_STORE][DATASET_KEY]["keyData"][0]
        assert first["leadId"] == 1

    def test_entry_needs_both_stores(self, tmp_path, sample_full_key):
        cache = LocalCache(tmp_path / "cache.json")
        cache.put(DATASET_STORE, DATASET_KEY, sample_full_key.model_dump(by_alias=True))
        assert cache.load_entry() is None
        cache.put(TIMESTAMP_STORE, TIMESTAMP_KEY, T0)
        assert cache.load_entry() is not None

    def test_in_memory_mode(self, sample_full_key):
        cache = LocalCache()
        cache.store_entry(CacheEntry(dataset=sample_full_key, fetched_at_ms=T0))
        assert cache.path is None
        assert cache.load_entry().fetched_at_ms == T0

    def test_corrupt_file_is_treated_as_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        assert LocalCache(path).load_entry() is None

    def test_unknown_version_is_ignored(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"version": 99, "stores": {}}))
        assert LocalCache(path).load_entry() is None

    def test_malformed_stores_are_a_miss(self, tmp_path, sample_full_key):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"version": 1, "stores": {"fullKey": [], "lastFetch": {}}}))
        cache = LocalCache(path)
        assert cache.get(DATASET_STORE, DATASET_KEY) is None
        assert cache.load_entry() is None

        cache.store_entry(CacheEntry(dataset=sample_full_key, fetched_at_ms=T0))
        assert cache.load_entry().dataset == sample_full_key

    def test_invalid_cached_dataset_is_ignored(self, tmp_path):
        cache = LocalCache(tmp_path / "cache.json")
        cache.put(DATASET_STORE, DATASET_KEY, {"keyData": [{"leadId": "nope"}]})
        cache.put(TIMESTAMP_STORE, TIMESTAMP_KEY, T0)
        assert cache.load_entry() is None

    def test_freshness_window(self, sample_full_key):
        cache = LocalCache(ttl=timedelta(hours=24))
        entry = CacheEntry(dataset=sample_full_key, fetched_at_ms=T0)
        assert cache.is_fresh(entry, T0 + 23 * HOUR_MS + 59 * MINUTE_MS)
        assert not cache.is_fresh(entry, T0 + 24 * HOUR_MS)
        assert not cache.is_fresh(entry, T0 + 24 * HOUR_MS + MINUTE_MS)


# ---------------------------------------------------------------------------
# 2. KeyFetcher
# ---------------------------------------------------------------------------
class TestKeyFetcherDataset:
    def test_empty_cache_fetches_and_stores(self, sample_full_key):
        cache = LocalCache()
        client = _mock_client(sample_full_key)
        fetcher = KeyFetcher(client, cache, clock=FakeClock())
        assert run(fetcher.fetch_dataset()) == sample_full_key
        client.get_full_key.assert_awaited_once()
        assert cache.load_entry().fetched_at_ms == T0

    def test_fresh_cache_skips_network(self, sample_full_key):
        cache = LocalCache()
        cache.store_entry(CacheEntry(dataset=sample_full_key, fetched_at_ms=T0))
        client = _mock_client(FullKey())
        fetcher = KeyFetcher(client, cache, clock=FakeClock(T0 + 23 * HOUR_MS + 59 * MINUTE_MS))
        assert run(fetcher.fetch_dataset()) == sample_full_key
        client.get_full_key.assert_not_awaited()

    def test_stale_cache_refetches_and_overwrites(self, sample_full_key):
        cache = LocalCache()
        cache.store_entry(CacheEntry(dataset=FullKey(), fetched_at_ms=T0))
        client = _mock_client(sample_full_key)
        later = T0 + 24 * HOUR_MS + MINUTE_MS
        fetcher = KeyFetcher(client, cache, clock=FakeClock(later))
        assert run(fetcher.fetch_dataset()) == sample_full_key
        client.get_full_key.assert_awaited_once()
        entry = cache.load_entry()
        assert entry.fetched_at_ms == later
        assert entry.dataset == sample_full_key

    def test_force_refresh_ignores_fresh_cache(self, sample_full_key):
        cache = LocalCache()
        cache.store_entry(CacheEntry(dataset=FullKey(), fetched_at_ms=T0))
        client = _mock_client(sample_full_key)
        fetcher = KeyFetcher(client, cache, clock=FakeClock(T0 + MINUTE_MS))
        assert run(fetcher.fetch_dataset(force_refresh=True)) == sample_full_key
        client.get_full_key.assert_awaited_once()

    def test_cache_write_failure_still_returns_data(self, sample_full_key):
        cache = LocalCache()
        client = _mock_client(sample_full_key)
        fetcher = KeyFetcher(client, cache, clock=FakeClock())
        with patch.object(cache, "store_entry", side_effect=OSError("disk full")):
            assert run(fetcher.fetch_dataset()) == sample_full_key

    def test_transport_error_propagates(self):
        client = _mock_client(FullKey())
        client.get_full_key.side_effect = TransportError("down")
        fetcher = KeyFetcher(client, LocalCache(), clock=FakeClock())
        with pytest.raises(TransportError):
            run(fetcher.fetch_dataset())


class TestKeyFetcherRecords:
    def test_full_key_needs_no_remote_call(self):
        client = _mock_client(FullKey(), records=[1, 2])
        fetcher = KeyFetcher(client, LocalCache(), full_key_id="full")
        assert run(fetcher.fetch_record_filter("full")) == frozenset()
        client.get_key_records.assert_not_awaited()

    def test_filtered_key_fetches_records(self):
        client = _mock_client(FullKey(), records=[7, 8, 7])
        fetcher = KeyFetcher(client, LocalCache())
        assert run(fetcher.fetch_record_filter("abc-123")) == frozenset({7, 8})
        client.get_key_records.assert_awaited_once_with("abc-123")

    def test_aclose_closes_client(self):
        client = _mock_client(FullKey())
        run(KeyFetcher(client, LocalCache()).aclose())
        client.aclose.assert_awaited_once()


# ---------------------------------------------------------------------------
# 3. KeyApiClient
# ---------------------------------------------------------------------------
def _client(handler, max_retries: int = 1) -> KeyApiClient:
    return KeyApiClient(
        base_url="https://keys.example.org/api/v1/",
        max_retries=max_retries,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


class TestKeyApiClient:
    def test_get_full_key(self, sample_full_key):
        payload = sample_full_key.model_dump(mode="json", by_alias=True)

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert str(request.url) == "https://keys.example.org/api/v1/full-key"
            return httpx.Response(200, json=payload)

        async def go():
            async with _client(handler) as client:
                return await client.get_full_key()

        assert run(go()) == sample_full_key

    def test_get_key_records_posts_key_id(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"records": [3, 1, 2]})

        async def go():
            async with _client(handler) as client:
                return await client.get_key_records("k-42")

        assert run(go()) == [3, 1, 2]
        assert seen == {
            "method": "POST",
            "url": "https://keys.example.org/api/v1/key-records",
            "body": {"key-id": "k-42"},
        }

    def test_retries_then_succeeds(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"records": [1]})

        async def go():
            async with _client(handler, max_retries=3) as client:
                return await client.get_key_records("k")

        assert run(go()) == [1]
        assert calls["n"] == 3

    def test_exhausted_retries_raise_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async def go():
            async with _client(handler, max_retries=2) as client:
                await client.get_full_key()

        with pytest.raises(TransportError, match="after 2 attempts"):
            run(go())

    def test_network_error_raises_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async def go():
            async with _client(handler) as client:
                await client.get_full_key()

        with pytest.raises(ConnectionError):
            run(go())

    def test_html_body_raises_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>maintenance</html>")

        async def go():
            async with _client(handler) as client:
                await client.get_full_key()

        with pytest.raises(TransportError, match="Non-JSON"):
            run(go())

    def test_invalid_dataset_shape_raises_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"keyData": [{"leadId": -3}]})

        async def go():
            async with _client(handler) as client:
                await client.get_full_key()

        with pytest.raises(TransportError, match="Invalid full key payload"):
            run(go())

    def test_missing_records_field_raises_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": []})

        async def go():
            async with _client(handler) as client:
                await client.get_key_records("k")

        with pytest.raises(TransportError, match="Invalid records payload"):
            run(go())


class TestBuildFetcher:
    def test_wires_settings(self, tmp_path):
        config = IdKeySettings(
            api_base_url="https://mirror.example.org/v2",
            cache_dir=tmp_path,
            cache_ttl_hours=6,
            full_key_id="everything",
            http_max_retries=5,
        )
        fetcher = build_fetcher(config)
        assert fetcher.full_key_id == "everything"
        assert fetcher.client.base_url == "https://mirror.example.org/v2"
        assert fetcher.client.max_retries == 5
        assert fetcher.cache.path == tmp_path / "key_cache.json"
        assert fetcher.cache.ttl == timedelta(hours=6)
