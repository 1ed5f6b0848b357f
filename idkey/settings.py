"""idkey configuration settings using Pydantic.

Values come from ``IDKEY_*`` environment variables or a local ``.env`` file.
"""

from datetime import timedelta
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class IdKeySettings(BaseSettings):
    """Central configuration for the identification key engine."""

    model_config = SettingsConfigDict(
        env_prefix="IDKEY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # --- Remote key service ---
    api_base_url: str = Field(default="https://italic.units.it/api/v1")
    full_key_path: str = "full-key"
    key_records_path: str = "key-records"
    full_key_id: str = "full"  # Reserved identity for the unfiltered key

    # --- HTTP ---
    http_timeout: float = 30.0
    http_max_retries: int = Field(default=3, ge=1)
    http_retry_delay: float = Field(default=1.0, ge=0)

    # --- Local cache ---
    cache_dir: Path = Field(default_factory=lambda: Path.home() / ".cache" / "idkey")
    cache_file: str = "key_cache.json"
    cache_ttl_hours: float = Field(default=24.0, gt=0)

    # --- Logging ---
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_file: str | None = None

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / self.cache_file

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.cache_ttl_hours)


# Singleton instance
settings = IdKeySettings()
