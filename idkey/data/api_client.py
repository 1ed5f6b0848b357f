"""Async client for the remote identification key service.

Timeouts, retries and the base URL are configurable; tests inject an
``httpx.MockTransport`` so no real HTTP calls are made.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from idkey.models import FullKey
from idkey.utils import TransportError

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_RETRY_DELAY = 1.0


class KeyApiClient:
    """Fetches the lead dataset and per-key record filters."""

    def __init__(
        self,
        base_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_delay: float = _DEFAULT_RETRY_DELAY,
        full_key_path: str = "full-key",
        key_records_path: str = "key-records",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.full_key_path = full_key_path
        self.key_records_path = key_records_path
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily created shared AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> KeyApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- Endpoints ------------------------------------------------------------

    async def get_full_key(self) -> FullKey:
        """Download the complete flat lead list."""
        payload = await self._request("GET", self.full_key_path)
        try:
            return FullKey.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(f"Invalid full key payload: {exc}") from exc

    async def get_key_records(self, key_id: str) -> list[int]:
        """Record ids that make up the key ``key_id``, in server order."""
        payload = await self._request(
            "POST", self.key_records_path, json_body={"key-id": key_id}
        )
        records = payload.get("records") if isinstance(payload, dict) else None
        if not isinstance(records, list):
            raise TransportError(f"Invalid records payload for key '{key_id}'")
        try:
            return [int(r) for r in records]
        except (TypeError, ValueError) as exc:
            raise TransportError(f"Non-integer record id for key '{key_id}'") from exc

    # -- Plumbing -------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Issue a request with retry logic and return the decoded JSON body."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        last_exc: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                resp = await self.client.request(method, url, json=json_body)
                resp.raise_for_status()
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                last_exc = exc
                logger.warning(
                    "Request to %s failed (attempt %d/%d): %s",
                    url, attempt + 1, self.max_retries, exc,
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
                continue
            try:
                return resp.json()
            except (json.JSONDecodeError, ValueError) as exc:
                raise TransportError(
                    f"Non-JSON response from {url} (status {resp.status_code})"
                ) from exc

        raise TransportError(
            f"Failed to reach {url} after {self.max_retries} attempts"
        ) from last_exc
