from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from edgefinder.config.constants import POLYMARKET_MARKETS_URL
from edgefinder.config.settings import RetrySettings, VenueAuth
from edgefinder.connectors.base import HttpVenueConnector
from edgefinder.core.errors import MalformedUpstreamData
from edgefinder.core.models import Venue
from edgefinder.utils.logging import get_logger


logger = get_logger("polymarket")


def _is_live(m: Dict[str, Any]) -> bool:
    # Treat missing fields as unknown/okay; only exclude explicit negatives
    if bool(m.get("archived")):
        return False
    if m.get("closed") is True:
        return False
    if m.get("active") is False:
        return False
    return True


class PolymarketConnector(HttpVenueConnector):
    """Open markets from the Polymarket Gamma API (read-only, no auth)."""

    venue = Venue.POLYMARKET

    def __init__(
        self,
        config: Optional[VenueAuth] = None,
        *,
        retry: Optional[RetrySettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or VenueAuth()
        super().__init__(self.config.base_url or POLYMARKET_MARKETS_URL, retry=retry, client=client)

    async def fetch_raw(self) -> List[Dict[str, Any]]:
        markets: List[Dict[str, Any]] = []
        offset = 0
        limit = self.config.page_limit
        for _ in range(self.config.max_pages):
            page = await self.get_json(self.base_url, {"closed": "false", "limit": limit, "offset": offset})
            if isinstance(page, dict):
                page = page.get("markets") or page.get("data") or []
            if not isinstance(page, list):
                raise MalformedUpstreamData(f"Unexpected Gamma response shape: {type(page).__name__}")
            markets.extend(m for m in page if isinstance(m, dict))
            if len(page) < limit:
                break
            offset += len(page)

        live = [m for m in markets if _is_live(m)]
        logger.info("Polymarket markets fetched: raw=%d, live=%d", len(markets), len(live))
        return live
