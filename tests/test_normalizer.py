from datetime import datetime, timezone

import pytest

from edgefinder.core.errors import MalformedUpstreamData
from edgefinder.core.models import Venue
from edgefinder.core.normalizer import (
    KalshiPayload,
    PolymarketPayload,
    normalize,
    normalize_batch,
    normalize_kalshi,
    normalize_polymarket,
    wrap,
)


def test_polymarket_book_prices_and_no_side_complement():
    rec = normalize_polymarket(
        {
            "slug": "fed-cut-dec",
            "question": "Will the Fed cut rates in December?",
            "description": "Resolves YES if the FOMC lowers the target range.",
            "bestBid": "0.60",
            "bestAsk": 0.62,
            "volumeNum": 1234.5,
            "endDate": "2025-12-10T00:00:00Z",
            "events": [{"slug": "fed-december", "title": "Fed December decision"}],
        }
    )
    assert rec.venue is Venue.POLYMARKET
    assert rec.market_id == "fed-cut-dec"
    assert rec.prices.buy_yes == pytest.approx(0.62)
    assert rec.prices.buy_no == pytest.approx(0.40)
    assert rec.prices.no_bid == pytest.approx(0.38)
    assert rec.closes_at == datetime(2025, 12, 10, tzinfo=timezone.utc)
    assert rec.url == "https://polymarket.com/event/fed-december"
    assert rec.volume == 1234.5
    assert "FOMC" in rec.semantic_text
    assert "Event: Fed December decision" in rec.semantic_text
    assert rec.semantic_text.endswith("Resolves: 2025-12-10")


def test_polymarket_outcome_prices_fallback():
    rec = normalize_polymarket(
        {
            "slug": "x",
            "question": "X?",
            "outcomes": '["No", "Yes"]',
            "outcomePrices": '["0.7", "0.3"]',
        }
    )
    assert rec.prices.buy_yes == pytest.approx(0.3)
    assert rec.prices.buy_no == pytest.approx(0.7)


def test_polymarket_missing_prices_stay_unknown():
    rec = normalize_polymarket({"slug": "x", "question": "X?"})
    assert rec.prices.buy_yes is None
    assert rec.prices.buy_no is None
    assert rec.prices.is_complete() is False


def test_kalshi_cents_and_dollars():
    rec = normalize_kalshi(
        {
            "ticker": "FEDCUT-25DEC",
            "event_ticker": "FEDCUT-25DEC",
            "title": "Fed rate cut in December?",
            "status": "active",
            "yes_ask": 45,
            "no_ask": 57,
            "yes_bid_dollars": "0.4300",
            "close_time": "2025-12-10T19:00:00Z",
        }
    )
    assert rec.venue is Venue.KALSHI
    assert rec.prices.buy_yes == pytest.approx(0.45)
    assert rec.prices.buy_no == pytest.approx(0.57)
    assert rec.prices.yes_bid == pytest.approx(0.43)
    assert rec.active is True
    assert rec.url == "https://kalshi.com/markets/fedcut/dm/fedcut-25dec"


def test_kalshi_out_of_range_price_is_unknown():
    rec = normalize_kalshi({"ticker": "T", "title": "T?", "yes_ask": 150, "no_ask": -1})
    assert rec.prices.buy_yes is None
    assert rec.prices.buy_no is None


def test_kalshi_settled_status_is_inactive():
    rec = normalize_kalshi({"ticker": "T", "title": "T?", "status": "settled"})
    assert rec.active is False


def test_dispatch_follows_payload_tag():
    assert normalize(PolymarketPayload({"slug": "a", "question": "A?"})).venue is Venue.POLYMARKET
    assert normalize(KalshiPayload({"ticker": "A", "title": "A?"})).venue is Venue.KALSHI


def test_missing_required_fields_raise():
    with pytest.raises(MalformedUpstreamData):
        normalize_kalshi({"title": "no ticker"})
    with pytest.raises(MalformedUpstreamData):
        normalize_polymarket({"slug": "no-question", "question": "   "})


def test_batch_skips_malformed_records():
    raw = [
        {"ticker": "OK-1", "title": "Fine"},
        {"ticker": "", "title": "Blank ticker"},
        {"ticker": "OK-2"},
        {"ticker": "OK-3", "title": "Also fine"},
    ]
    records, skipped = normalize_batch(wrap(Venue.KALSHI, raw))
    assert [r.market_id for r in records] == ["OK-1", "OK-3"]
    assert skipped == 2
