"""Core data models for venue listings, matches and arbitrage opportunities.

This module defines the fundamental data structures used throughout the
pipeline: canonical market records, cross-venue matches, arbitrage results,
shared datasets (snapshots), entitlements and edge observations.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


class Venue(str, Enum):
    POLYMARKET = "polymarket"  # venue A
    KALSHI = "kalshi"  # venue B


class EdgeQuality(str, Enum):
    STABLE = "STABLE"
    PERSISTENT = "PERSISTENT"
    STABLE_SHORT = "STABLE_SHORT"
    NOISY = "NOISY"


@dataclass(frozen=True)
class PriceQuad:
    """Top of book for a binary market, each leg in [0, 1] or None if unknown."""

    yes_bid: Optional[float] = None
    yes_ask: Optional[float] = None
    no_bid: Optional[float] = None
    no_ask: Optional[float] = None

    @property
    def buy_yes(self) -> Optional[float]:
        return self.yes_ask

    @property
    def buy_no(self) -> Optional[float]:
        return self.no_ask

    def is_complete(self) -> bool:
        return self.buy_yes is not None and self.buy_no is not None


@dataclass(frozen=True)
class MarketRecord:
    venue: Venue
    market_id: str  # venue-native key (slug / ticker)
    title: str
    prices: PriceQuad = field(default_factory=PriceQuad)
    opens_at: Optional[datetime] = None
    closes_at: Optional[datetime] = None
    volume: float = 0.0
    category: Optional[str] = None
    active: bool = True
    url: str = ""
    semantic_text: str = ""
    embedding: Optional[Tuple[float, ...]] = None

    def is_open(self, now: datetime) -> bool:
        if not self.active:
            return False
        return self.closes_at is None or self.closes_at > now

    def with_embedding(self, vector: Sequence[float]) -> "MarketRecord":
        return replace(self, embedding=tuple(float(x) for x in vector))


@dataclass(frozen=True)
class MarketMatch:
    a: MarketRecord  # Polymarket side
    b: MarketRecord  # Kalshi side
    similarity: float
    is_best_match: bool = True

    @property
    def match_id(self) -> str:
        return f"{self.a.market_id}::{self.b.market_id}"


@dataclass(frozen=True)
class ArbitrageResult:
    """Outcome of comparing the two two-leg cost bases of a matched pair.

    option1 buys YES on venue A and NO on venue B; option2 buys YES on venue B
    and NO on venue A. Costs are None when a leg price is unknown.
    """

    option1: Optional[float]
    option2: Optional[float]
    best_cost: Optional[float]
    is_arbitrage: bool
    profit_per_unit: float
    direction: Optional[str]
    strategy: str

    @property
    def edge_percent(self) -> float:
        return self.profit_per_unit * 100.0


@dataclass(frozen=True)
class MatchedEvent:
    match: MarketMatch
    arb: ArbitrageResult

    @property
    def opportunity_id(self) -> str:
        return self.match.match_id

    def to_item(self) -> Dict[str, Any]:
        """Serialise to the shared-dataset item shape."""
        a, b = self.match.a, self.match.b
        end = a.closes_at or b.closes_at
        return {
            "id": self.opportunity_id,
            "title": a.title or b.title,
            "category": a.category or b.category or "prediction-market",
            "endDateISO": end.isoformat() if end else None,
            "polymarket": {
                "marketId": a.market_id,
                "yesPrice": a.prices.buy_yes,
                "noPrice": a.prices.buy_no,
                "url": a.url,
                "liquidityUSD": a.volume,
            },
            "kalshi": {
                "ticker": b.market_id,
                "yesPrice": b.prices.buy_yes,
                "noPrice": b.prices.buy_no,
                "url": b.url,
                "liquidityUSD": b.volume,
            },
            "similarity": self.match.similarity,
            "isArbitrage": self.arb.is_arbitrage,
            "bestCost": self.arb.best_cost,
            "edgePercent": self.arb.edge_percent,
            "direction": self.arb.direction,
            "strategy": self.arb.strategy,
        }


@dataclass(frozen=True)
class SharedDataset:
    dataset_id: str
    run_id: Optional[str]
    items: Tuple[Dict[str, Any], ...]
    created_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        out = {
            "id": self.dataset_id,
            "pipeline_run_id": self.run_id,
            "items": [dict(i) for i in self.items],
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }
        if now is not None:
            out["is_stale"] = not self.is_active(now)
        return out


@dataclass(frozen=True)
class Entitlement:
    entitlement_id: str
    wallet_address: str
    dataset_id: str
    created_at: datetime
    valid_until: datetime

    def is_valid(self, now: datetime) -> bool:
        return now < self.valid_until


@dataclass(frozen=True)
class EdgeSnapshot:
    snapshot_id: str
    opportunity_id: str
    timestamp: datetime
    polymarket_yes_price: float
    polymarket_no_price: float
    kalshi_yes_price: float
    kalshi_no_price: float
    edge_percent: float
    strategy: str
    polymarket_id: str = ""
    kalshi_id: str = ""
    title: str = ""


@dataclass(frozen=True)
class EdgeAnalytics:
    opportunity_id: str
    edge_min: float
    edge_max: float
    edge_avg: float
    snapshot_count: int
    first_seen: datetime
    last_seen: datetime
    duration_minutes: float
    samples_above_threshold: int
    amp_edge_score: float
    is_persistent: bool
    is_stable: bool
    quality: EdgeQuality

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edge_min": self.edge_min,
            "edge_max": self.edge_max,
            "edge_avg": self.edge_avg,
            "snapshot_count": self.snapshot_count,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "duration_minutes": self.duration_minutes,
            "samples_above_threshold": self.samples_above_threshold,
            "amp_edge_score": self.amp_edge_score,
            "edge_quality": self.quality.value,
            "is_persistent": self.is_persistent,
            "is_stable": self.is_stable,
        }
