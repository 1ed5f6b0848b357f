"""Remote key service access and the local dataset cache."""

from idkey.data.api_client import KeyApiClient
from idkey.data.cache import LocalCache
from idkey.data.fetcher import KeyFetcher
from idkey.settings import IdKeySettings


def build_fetcher(config: IdKeySettings) -> KeyFetcher:
    """Wire a KeyFetcher from configuration."""
    client = KeyApiClient(
        base_url=config.api_base_url,
        timeout=config.http_timeout,
        max_retries=config.http_max_retries,
        retry_delay=config.http_retry_delay,
        full_key_path=config.full_key_path,
        key_records_path=config.key_records_path,
    )
    cache = LocalCache(config.cache_path, ttl=config.cache_ttl)
    return KeyFetcher(client, cache, full_key_id=config.full_key_id)


__all__ = [
    "KeyApiClient",
    "KeyFetcher",
    "LocalCache",
    "build_fetcher",
]
