import asyncio
import itertools
from datetime import timedelta

import pytest

from edgefinder.core.arb import evaluate_matches
from edgefinder.core.edge_history import EdgeHistory, build_observation, classify, compute_analytics
from edgefinder.core.models import EdgeQuality, EdgeSnapshot, PriceQuad
from edgefinder.storage.db import Database


def _snap(opp, ts, edge):
    return EdgeSnapshot(
        snapshot_id=f"{opp}-{ts.isoformat()}",
        opportunity_id=opp,
        timestamp=ts,
        polymarket_yes_price=0.4,
        polymarket_no_price=0.6,
        kalshi_yes_price=0.45,
        kalshi_no_price=0.5,
        edge_percent=edge,
        strategy="BUY_YES_PM_BUY_NO_KALSHI",
    )


def test_five_samples_over_45_minutes_are_stable(now):
    minutes = [0, 10, 20, 35, 45]
    edges = [4.0, 4.5, 5.0, 5.5, 6.0]
    samples = [_snap("opp", now + timedelta(minutes=m), e) for m, e in zip(minutes, edges)]

    a = compute_analytics("opp", samples, edge_threshold=5.0)
    assert a.samples_above_threshold == 3
    assert a.duration_minutes == pytest.approx(45.0)
    assert a.is_persistent is True
    assert a.edge_max - a.edge_min == pytest.approx(2.0)
    assert a.is_stable is True
    assert a.quality is EdgeQuality.STABLE
    assert a.snapshot_count == 5
    assert a.edge_avg == pytest.approx(5.0)
    # 5.0 * 0.4 + 0.75h * 0.3 + (5 / 60) * 0.3
    assert a.amp_edge_score == pytest.approx(2.25)


def test_short_window_is_not_persistent(now):
    samples = [_snap("opp", now + timedelta(minutes=m), 8.0) for m in (0, 5, 10)]
    a = compute_analytics("opp", samples, edge_threshold=5.0)
    assert a.is_persistent is False
    assert a.quality is EdgeQuality.STABLE_SHORT


def test_wide_range_over_long_window_is_persistent(now):
    edges = [5.0, 12.0, 6.0, 9.0]
    samples = [_snap("opp", now + timedelta(minutes=20 * i), e) for i, e in enumerate(edges)]
    a = compute_analytics("opp", samples, edge_threshold=5.0)
    assert a.is_persistent is True
    assert a.is_stable is False
    assert a.quality is EdgeQuality.PERSISTENT


def test_quality_labels_partition_flag_space():
    labels = [classify(p, s) for p, s in itertools.product([True, False], repeat=2)]
    assert sorted(label.value for label in labels) == sorted(q.value for q in EdgeQuality)


def test_no_samples_means_no_analytics():
    assert compute_analytics("opp", []) is None


def test_only_positive_edges_are_recorded(now):
    arb = build_observation("o", PriceQuad(yes_ask=0.4, no_ask=0.6), PriceQuad(yes_ask=0.45, no_ask=0.5), now)
    assert arb is not None
    assert arb.edge_percent == pytest.approx(10.0)

    fair = build_observation("o", PriceQuad(yes_ask=0.5, no_ask=0.5), PriceQuad(yes_ask=0.5, no_ask=0.5), now)
    assert fair is None
    missing = build_observation("o", PriceQuad(yes_ask=0.4), PriceQuad(yes_ask=0.45, no_ask=0.5), now)
    assert missing is None


def test_history_window_and_analytics_from_log(make_match, now):
    async def _run():
        async with Database() as db:
            history = EdgeHistory(db)
            events = evaluate_matches(
                [
                    make_match("pm-1", "KX-1", 0.40, 0.60, 0.45, 0.50),
                    make_match("pm-2", "KX-2", 0.50, 0.50, 0.50, 0.50),
                ]
            )
            written = await history.append_events(events, now - timedelta(hours=30))
            assert written == 1
            for minutes in (0, 20, 40):
                await history.append_events(events, now + timedelta(minutes=minutes))

            later = now + timedelta(minutes=40)
            points = await history.get_edge_history("pm-1::KX-1", window_hours=24, now=later)
            assert len(points) == 3
            assert [ts for ts, _ in points] == sorted(ts for ts, _ in points)

            a = await history.get_analytics("pm-1::KX-1", window_hours=24, edge_threshold=5.0, now=later)
            assert a.snapshot_count == 3
            assert a.duration_minutes == pytest.approx(40.0)
            assert a.quality is EdgeQuality.STABLE

            assert await history.get_analytics("pm-2::KX-2", now=later) is None

    asyncio.run(_run())
