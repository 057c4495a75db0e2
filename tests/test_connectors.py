import asyncio

import httpx
import pytest

from edgefinder.config.settings import RetrySettings, VenueAuth
from edgefinder.connectors.demo import EVENTS, DemoConnector
from edgefinder.connectors.kalshi import KalshiConnector
from edgefinder.connectors.polymarket import PolymarketConnector
from edgefinder.core.errors import MalformedUpstreamData, UpstreamUnavailable
from edgefinder.core.models import Venue


FAST_RETRY = RetrySettings(max_attempts=2, initial_delay=0.0, backoff_factor=1.0, max_delay=0.0)


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_polymarket_paginates_and_drops_closed():
    seen = []

    def handler(request):
        offset = int(request.url.params["offset"])
        seen.append(offset)
        assert request.url.params["closed"] == "false"
        if offset == 0:
            return httpx.Response(200, json=[{"slug": "a"}, {"slug": "b", "closed": True}])
        return httpx.Response(200, json=[{"slug": "c", "archived": True}])

    async def _run():
        async with _client(handler) as client:
            conn = PolymarketConnector(VenueAuth(base_url="https://gamma.test/markets", page_limit=2), client=client)
            return await conn.fetch_raw()

    markets = asyncio.run(_run())
    assert [m["slug"] for m in markets] == ["a"]
    assert seen == [0, 2]


def test_polymarket_unexpected_shape_is_malformed():
    def handler(request):
        return httpx.Response(200, json="nope")

    async def _run():
        async with _client(handler) as client:
            await PolymarketConnector(VenueAuth(base_url="https://gamma.test/markets"), client=client).fetch_raw()

    with pytest.raises(MalformedUpstreamData):
        asyncio.run(_run())


def test_kalshi_follows_cursor_and_sends_bearer():
    pages = {
        None: {"markets": [{"ticker": "A"}], "cursor": "next"},
        "next": {"markets": [{"ticker": "B"}], "cursor": ""},
    }

    def handler(request):
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.url.params["status"] == "open"
        return httpx.Response(200, json=pages[request.url.params.get("cursor")])

    async def _run():
        async with _client(handler) as client:
            conn = KalshiConnector(VenueAuth(base_url="https://kalshi.test/markets", api_key="secret"), client=client)
            return await conn.fetch_raw()

    assert [m["ticker"] for m in asyncio.run(_run())] == ["A", "B"]


def test_server_errors_become_upstream_unavailable():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    async def _run():
        async with _client(handler) as client:
            conn = KalshiConnector(VenueAuth(base_url="https://kalshi.test/markets"), retry=FAST_RETRY, client=client)
            await conn.fetch_raw()

    with pytest.raises(UpstreamUnavailable):
        asyncio.run(_run())
    assert len(calls) == 2


def test_demo_venues_quote_the_same_events():
    pm = asyncio.run(DemoConnector(Venue.POLYMARKET, seed=1).fetch_raw())
    ks = asyncio.run(DemoConnector(Venue.KALSHI, seed=1).fetch_raw())
    assert len(pm) == len(ks) == len(EVENTS)
    assert {m["slug"] for m in pm} == {t.lower() for _, _, t, _ in EVENTS}
    assert all(1 <= m["yes_ask"] <= 99 for m in ks)
