from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from edgefinder.config.constants import KALSHI_MARKETS_URL
from edgefinder.config.settings import RetrySettings, VenueAuth
from edgefinder.connectors.base import HttpVenueConnector
from edgefinder.core.errors import MalformedUpstreamData
from edgefinder.core.models import Venue
from edgefinder.utils.logging import get_logger


logger = get_logger("kalshi")


class KalshiConnector(HttpVenueConnector):
    """Open markets from the Kalshi trade API with cursor pagination."""

    venue = Venue.KALSHI

    def __init__(
        self,
        config: Optional[VenueAuth] = None,
        *,
        retry: Optional[RetrySettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or VenueAuth()
        headers = {}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        super().__init__(self.config.base_url or KALSHI_MARKETS_URL, retry=retry, client=client, headers=headers)

    async def fetch_raw(self) -> List[Dict[str, Any]]:
        markets: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(self.config.max_pages):
            params: Dict[str, Any] = {"status": "open", "limit": self.config.page_limit}
            if cursor:
                params["cursor"] = cursor
            data = await self.get_json(self.base_url, params)
            if not isinstance(data, dict):
                raise MalformedUpstreamData(f"Unexpected Kalshi response shape: {type(data).__name__}")
            markets.extend(m for m in data.get("markets") or [] if isinstance(m, dict))
            cursor = data.get("cursor") or None
            if not cursor:
                break
        logger.info("Kalshi markets fetched: %d", len(markets))
        return markets
