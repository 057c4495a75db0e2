from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from edgefinder.connectors.base import VenueConnector
from edgefinder.core.models import Venue


# (polymarket question, kalshi title, kalshi ticker, days to close)
EVENTS = [
    ("Will the Fed cut rates in December 2025?", "Fed rate cut at December 2025 meeting?", "FEDCUT-25DEC", 60),
    ("Will Democrats win the Senate in 2026?", "Democrats win Senate majority in 2026?", "SENATE-26-D", 400),
    ("Will the Republican nominee win the 2028 presidential election?", "Republican wins 2028 presidential election?", "PRES-28-R", 1200),
    ("Will the government shut down before 2026?", "Government shutdown before 2026?", "SHUTDOWN-26", 75),
]


def _clip_price(p: float) -> float:
    return max(0.01, min(0.99, p))


def _close(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


class DemoConnector(VenueConnector):
    """Synthetic listings for offline runs; both venues quote the same events."""

    def __init__(self, venue: Venue, seed: Optional[int] = None):
        self.venue = venue
        self._rng = random.Random(seed)

    def _polymarket(self) -> List[Dict[str, Any]]:
        out = []
        for question, _, ticker, days in EVENTS:
            mid = self._rng.uniform(0.2, 0.8)
            half_spread = self._rng.uniform(0.005, 0.02)
            out.append(
                {
                    "slug": ticker.lower(),
                    "question": question,
                    "category": "Politics",
                    "bestBid": round(_clip_price(mid - half_spread), 3),
                    "bestAsk": round(_clip_price(mid + half_spread), 3),
                    "volumeNum": round(self._rng.uniform(1_000, 50_000), 2),
                    "endDate": _close(days),
                    "active": True,
                    "closed": False,
                }
            )
        return out

    def _kalshi(self) -> List[Dict[str, Any]]:
        out = []
        for _, title, ticker, days in EVENTS:
            yes_ask = _clip_price(self._rng.uniform(0.2, 0.8) + self._rng.uniform(-0.05, 0.05))
            no_ask = _clip_price(1.0 - yes_ask + self._rng.uniform(-0.04, 0.04))
            out.append(
                {
                    "ticker": ticker,
                    "event_ticker": ticker.split("-")[0],
                    "title": title,
                    "status": "active",
                    "yes_ask": int(round(yes_ask * 100)),
                    "yes_bid": int(round(yes_ask * 100)) - 1,
                    "no_ask": int(round(no_ask * 100)),
                    "no_bid": int(round(no_ask * 100)) - 1,
                    "volume": self._rng.randint(100, 20_000),
                    "close_time": _close(days),
                }
            )
        return out

    async def fetch_raw(self) -> List[Dict[str, Any]]:
        if self.venue is Venue.POLYMARKET:
            return self._polymarket()
        return self._kalshi()
