"""Edge history log and temporal quality scoring.

Every pipeline run appends one observation per matched pair whose edge is
positive. Analytics are recomputed from that log on each query over a
trailing window; nothing derived is stored.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

from edgefinder.config.constants import DEFAULT_EDGE_THRESHOLD, DEFAULT_WINDOW_HOURS
from edgefinder.config.settings import ScoringConfig
from edgefinder.core.arb import evaluate_quads
from edgefinder.core.models import (
    EdgeAnalytics,
    EdgeQuality,
    EdgeSnapshot,
    MatchedEvent,
    PriceQuad,
)
from edgefinder.storage.db import Database
from edgefinder.utils.logging import get_logger


logger = get_logger("edge_history")


def classify(is_persistent: bool, is_stable: bool) -> EdgeQuality:
    if is_persistent and is_stable:
        return EdgeQuality.STABLE
    if is_persistent:
        return EdgeQuality.PERSISTENT
    if is_stable:
        return EdgeQuality.STABLE_SHORT
    return EdgeQuality.NOISY


def compute_analytics(
    opportunity_id: str,
    samples: Sequence[EdgeSnapshot],
    edge_threshold: float = DEFAULT_EDGE_THRESHOLD,
    config: Optional[ScoringConfig] = None,
) -> Optional[EdgeAnalytics]:
    """Aggregate a window of observations; None when there are none."""
    cfg = config or ScoringConfig()
    edges = [s.edge_percent for s in samples if s.edge_percent > 0]
    stamps = [s.timestamp for s in samples if s.edge_percent > 0]
    if not edges:
        return None

    edge_min, edge_max = min(edges), max(edges)
    edge_avg = sum(edges) / len(edges)
    first_seen, last_seen = min(stamps), max(stamps)
    duration_minutes = (last_seen - first_seen).total_seconds() / 60.0
    above = sum(1 for e in edges if e >= edge_threshold)

    is_persistent = duration_minutes >= cfg.persistence_min_minutes and above >= cfg.persistence_min_samples
    is_stable = (edge_max - edge_min) < cfg.stability_max_range
    score = (
        edge_avg * cfg.weight_edge
        + (duration_minutes / 60.0) * cfg.weight_duration
        + (len(edges) / cfg.sample_divisor) * cfg.weight_samples
    )
    return EdgeAnalytics(
        opportunity_id=opportunity_id,
        edge_min=edge_min,
        edge_max=edge_max,
        edge_avg=edge_avg,
        snapshot_count=len(edges),
        first_seen=first_seen,
        last_seen=last_seen,
        duration_minutes=duration_minutes,
        samples_above_threshold=above,
        amp_edge_score=score,
        is_persistent=is_persistent,
        is_stable=is_stable,
        quality=classify(is_persistent, is_stable),
    )


def build_observation(
    opportunity_id: str,
    polymarket: PriceQuad,
    kalshi: PriceQuad,
    timestamp: datetime,
    *,
    polymarket_id: str = "",
    kalshi_id: str = "",
    title: str = "",
) -> Optional[EdgeSnapshot]:
    """Edge observation for a price quad, or None if there is no positive edge."""
    arb = evaluate_quads(polymarket, kalshi)
    if not arb.is_arbitrage or arb.edge_percent <= 0:
        return None
    return EdgeSnapshot(
        snapshot_id=str(uuid.uuid4()),
        opportunity_id=opportunity_id,
        timestamp=timestamp,
        polymarket_yes_price=polymarket.buy_yes,
        polymarket_no_price=polymarket.buy_no,
        kalshi_yes_price=kalshi.buy_yes,
        kalshi_no_price=kalshi.buy_no,
        edge_percent=arb.edge_percent,
        strategy=arb.strategy,
        polymarket_id=polymarket_id,
        kalshi_id=kalshi_id,
        title=title,
    )


class EdgeHistory:
    def __init__(self, db: Database, config: Optional[ScoringConfig] = None):
        self.db = db
        self.config = config or ScoringConfig()

    async def append_observation(
        self,
        opportunity_id: str,
        polymarket: PriceQuad,
        kalshi: PriceQuad,
        timestamp: Optional[datetime] = None,
        **meta: str,
    ) -> Optional[EdgeSnapshot]:
        snap = build_observation(
            opportunity_id,
            polymarket,
            kalshi,
            timestamp or datetime.now(timezone.utc),
            **meta,
        )
        if snap is None:
            return None
        await self.db.insert_edge_snapshots([snap])
        return snap

    async def append_events(self, events: Sequence[MatchedEvent], timestamp: Optional[datetime] = None) -> int:
        """Record one observation per event with a positive edge; returns count."""
        ts = timestamp or datetime.now(timezone.utc)
        snaps: List[EdgeSnapshot] = []
        for event in events:
            snap = build_observation(
                event.opportunity_id,
                event.match.a.prices,
                event.match.b.prices,
                ts,
                polymarket_id=event.match.a.market_id,
                kalshi_id=event.match.b.market_id,
                title=event.match.a.title or event.match.b.title,
            )
            if snap is not None:
                snaps.append(snap)
        if not snaps:
            logger.info("No edge snapshots to record (no arbitrage opportunities)")
            return 0
        written = await self.db.insert_edge_snapshots(snaps)
        logger.info("Recorded %d edge snapshots", written)
        return written

    async def get_analytics(
        self,
        opportunity_id: str,
        window_hours: float = DEFAULT_WINDOW_HOURS,
        edge_threshold: float = DEFAULT_EDGE_THRESHOLD,
        now: Optional[datetime] = None,
    ) -> Optional[EdgeAnalytics]:
        now = now or datetime.now(timezone.utc)
        samples = await self.db.edge_snapshots_since(opportunity_id, now - timedelta(hours=window_hours))
        return compute_analytics(opportunity_id, samples, edge_threshold, self.config)

    async def get_edge_history(
        self,
        opportunity_id: str,
        window_hours: float = DEFAULT_WINDOW_HOURS,
        now: Optional[datetime] = None,
    ) -> List[Tuple[datetime, float]]:
        now = now or datetime.now(timezone.utc)
        samples = await self.db.edge_snapshots_since(opportunity_id, now - timedelta(hours=window_hours))
        return [(s.timestamp, s.edge_percent) for s in samples]
