"""
idkey - interactive taxonomic identification key engine

Builds, prunes and navigates a key tree served as a flat lead list
"""

__version__ = "0.1.0"

from idkey.data import KeyApiClient, KeyFetcher, LocalCache, build_fetcher
from idkey.models import (
    CacheEntry,
    FullKey,
    LeadRecord,
    SessionState,
    SpeciesEntry,
    SpeciesWithRecords,
)
from idkey.session import KeySession
from idkey.utils import (
    ConfigurationError,
    IdKeyError,
    MalformedTreeError,
    TransportError,
)

__all__ = [
    "CacheEntry",
    "ConfigurationError",
    "FullKey",
    "IdKeyError",
    "KeyApiClient",
    "KeyFetcher",
    "KeySession",
    "LeadRecord",
    "LocalCache",
    "MalformedTreeError",
    "SessionState",
    "SpeciesEntry",
    "SpeciesWithRecords",
    "TransportError",
    "build_fetcher",
]
