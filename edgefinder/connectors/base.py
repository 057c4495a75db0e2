from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from edgefinder.config.constants import API_TIMEOUT_SECONDS
from edgefinder.config.settings import RetrySettings
from edgefinder.core.models import Venue
from edgefinder.utils.retry import retry_with_backoff


class VenueConnector(ABC):
    """Supplies raw, already-filtered open listings for one venue."""

    venue: Venue

    @abstractmethod
    async def fetch_raw(self) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class HttpVenueConnector(VenueConnector):
    def __init__(
        self,
        base_url: str,
        *,
        retry: Optional[RetrySettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url
        self.retry = retry or RetrySettings()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=API_TIMEOUT_SECONDS)
        self._headers = {"Accept": "application/json", **(headers or {})}

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_once(self, url: str, params: Dict[str, Any]) -> Any:
        resp = await self._client.get(url, params=params, headers=self._headers)
        resp.raise_for_status()
        return resp.json()

    async def get_json(self, url: str, params: Dict[str, Any]) -> Any:
        return await retry_with_backoff(
            self._get_once,
            url,
            params,
            max_retries=self.retry.max_attempts,
            initial_delay=self.retry.initial_delay,
            backoff_factor=self.retry.backoff_factor,
            max_delay=self.retry.max_delay,
            label=f"{self.venue.value} GET",
        )
