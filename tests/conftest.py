from datetime import datetime, timedelta, timezone

import pytest

from edgefinder.core.models import MarketMatch, MarketRecord, PriceQuad, Venue


T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return T0


@pytest.fixture
def make_record():
    def _make(
        market_id,
        venue=Venue.POLYMARKET,
        embedding=(1.0, 0.0, 0.0),
        yes=None,
        no=None,
        title=None,
        active=True,
        closes_at=T0 + timedelta(days=30),
    ):
        return MarketRecord(
            venue=venue,
            market_id=market_id,
            title=title or f"Market {market_id}",
            prices=PriceQuad(yes_ask=yes, no_ask=no),
            closes_at=closes_at,
            active=active,
            embedding=tuple(embedding) if embedding is not None else None,
        )

    return _make


@pytest.fixture
def make_match(make_record):
    def _make(a_id, b_id, yes_a, no_a, yes_b, no_b, similarity=0.9):
        a = make_record(a_id, Venue.POLYMARKET, yes=yes_a, no=no_a)
        b = make_record(b_id, Venue.KALSHI, yes=yes_b, no=no_b)
        return MarketMatch(a=a, b=b, similarity=similarity)

    return _make
