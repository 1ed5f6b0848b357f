"""Shared test fixtures for the idkey test suite."""

import asyncio
import os
import tempfile

import pytest

# Ensure test environment variables are set before any settings import
os.environ.setdefault("IDKEY_CACHE_DIR", tempfile.mkdtemp(prefix="idkey-test-"))
os.environ.setdefault("IDKEY_HTTP_RETRY_DELAY", "0")
os.environ.setdefault("IDKEY_API_BASE_URL", "https://keys.example.org/api/v1")

from idkey.models import FullKey, LeadRecord  # noqa: E402


def lead(lead_id, parent_id, text="", species=None, record_id=0, species_image=None, lead_image=None):
    return LeadRecord(
        lead_id=lead_id,
        parent_id=parent_id,
        text=text,
        species=species,
        record_id=record_id,
        species_image=species_image,
        lead_image=lead_image,
    )


@pytest.fixture
def sample_leads():
    """A small beetle key.

    1 Body shape?
    ├── 2 Elytra shiny
    │   ├── 3 Carabus auratus (record 7)
    │   └── 4 Carabus violaceus (record 8)
    ├── 5 Elytra dull
    │   ├── 6 abax parallelepipedus (record 9)
    │   ├── 7 Carabus auratus (record 10)
    │   └── 8 dead end, no species
    └── 9 Antennae clubbed
        └── 10 dead end, no species
    """
    return [
        lead(1, 1, "Body shape?"),
        lead(2, 1, "Elytra shiny"),
        lead(3, 2, "Green metallic", species="Carabus auratus", record_id=7, species_image="auratus.jpg"),
        lead(4, 2, "Violet margin", species="Carabus violaceus", record_id=8),
        lead(5, 1, "Elytra dull"),
        lead(6, 5, "Flat body", species="abax parallelepipedus", record_id=9),
        lead(7, 5, "Worn specimen", species="Carabus auratus", record_id=10, species_image="auratus_worn.jpg"),
        lead(8, 5, "Not recorded here"),
        lead(9, 1, "Antennae clubbed"),
        lead(10, 9, "Not recorded here"),
    ]


@pytest.fixture
def sample_full_key(sample_leads):
    return FullKey(key_data=sample_leads)


class StubFetcher:
    """In-memory stand-in for KeyFetcher.

    ``records`` maps key ids to record lists; ``gates`` maps key ids to
    asyncio.Event objects the record fetch waits on before returning.
    """

    def __init__(self, dataset, records=None, full_key_id="full", error=None):
        self.dataset = dataset
        self.records = records or {}
        self.full_key_id = full_key_id
        self.error = error
        self.gates = {}
        self.dataset_calls = 0
        self.record_calls = []
        self.cancelled = []
        self.closed = False

    def is_full_key(self, key_id):
        return key_id == self.full_key_id

    async def fetch_dataset(self, force_refresh=False):
        self.dataset_calls += 1
        if self.error is not None:
            raise self.error
        return self.dataset

    async def fetch_record_filter(self, key_id):
        self.record_calls.append(key_id)
        gate = self.gates.get(key_id)
        if gate is not None:
            try:
                await gate.wait()
            except asyncio.CancelledError:
                self.cancelled.append(key_id)
                raise
        if self.is_full_key(key_id):
            return frozenset()
        return frozenset(self.records.get(key_id, []))

    async def aclose(self):
        self.closed = True


@pytest.fixture
def stub_fetcher(sample_full_key):
    return StubFetcher(sample_full_key, records={"k7": [7], "k-violet": [8, 9]})


def run(coro):
    return asyncio.run(coro)
