"""Map heterogeneous venue payloads into canonical `MarketRecord`s.

Raw listings arrive as a tagged union (`PolymarketPayload` or `KalshiPayload`).
Venue-specific field names, price encodings (dollars vs integer cents, JSON
strings vs lists) and status flags are resolved here and nowhere else.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from edgefinder.config.constants import SEMANTIC_TEXT_MAX_DESCRIPTION
from edgefinder.core.errors import MalformedUpstreamData
from edgefinder.core.models import MarketRecord, PriceQuad, Venue
from edgefinder.utils.logging import get_logger
from edgefinder.utils.validation import (
    parse_dt,
    parse_number,
    parse_price,
    validate_market_id,
    validate_title,
)


logger = get_logger("normalizer")


@dataclass(frozen=True)
class PolymarketPayload:
    raw: Dict[str, Any]
    venue: Venue = Venue.POLYMARKET


@dataclass(frozen=True)
class KalshiPayload:
    raw: Dict[str, Any]
    venue: Venue = Venue.KALSHI


RawPayload = Union[PolymarketPayload, KalshiPayload]


def _complement(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(1.0 - value, 10)


def _json_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return [s.strip().strip('"') for s in value.strip("[]").split(",") if s.strip()]
        return parsed if isinstance(parsed, list) else []
    return []


def _resolves_suffix(record_dt) -> Optional[str]:
    if record_dt is None:
        return None
    return f"Resolves: {record_dt.date().isoformat()}"


def _polymarket_prices(m: Dict[str, Any]) -> PriceQuad:
    yes_bid = parse_price(m.get("bestBid"))
    yes_ask = parse_price(m.get("bestAsk"))
    if yes_bid is not None or yes_ask is not None:
        # NO token book mirrors the YES book on a binary CLOB market
        return PriceQuad(
            yes_bid=yes_bid,
            yes_ask=yes_ask,
            no_bid=_complement(yes_ask),
            no_ask=_complement(yes_bid),
        )
    outcomes = [str(o).strip().lower() for o in _json_list(m.get("outcomes"))]
    prices = _json_list(m.get("outcomePrices"))
    if len(prices) >= 2:
        yes_idx, no_idx = 0, 1
        if "yes" in outcomes and "no" in outcomes:
            yes_idx, no_idx = outcomes.index("yes"), outcomes.index("no")
        if max(yes_idx, no_idx) < len(prices):
            return PriceQuad(yes_ask=parse_price(prices[yes_idx]), no_ask=parse_price(prices[no_idx]))
    return PriceQuad()


def normalize_polymarket(m: Dict[str, Any]) -> MarketRecord:
    market_id = validate_market_id(m.get("slug") or m.get("conditionId") or m.get("id"), "polymarket slug")
    title = validate_title(m.get("question") or m.get("title"), "polymarket question")
    events = m.get("events") or []
    first_event = events[0] if isinstance(events, list) and events and isinstance(events[0], dict) else {}
    event_slug = m.get("eventSlug") or first_event.get("slug")
    closes_at = parse_dt(m.get("endDateIso")) or parse_dt(m.get("endDate"))

    parts = [title]
    description = (m.get("description") or "").strip()
    if description:
        parts.append(description[:SEMANTIC_TEXT_MAX_DESCRIPTION].strip())
    if first_event.get("title"):
        parts.append(f"Event: {first_event['title']}")
    resolves = _resolves_suffix(closes_at)
    if resolves:
        parts.append(resolves)

    return MarketRecord(
        venue=Venue.POLYMARKET,
        market_id=market_id,
        title=title,
        prices=_polymarket_prices(m),
        opens_at=parse_dt(m.get("startDate")),
        closes_at=closes_at,
        volume=parse_number(m.get("volumeNum") if m.get("volumeNum") is not None else m.get("volume")),
        category=m.get("category") or None,
        active=m.get("active") is not False and m.get("closed") is not True and not m.get("archived"),
        url=f"https://polymarket.com/event/{event_slug or market_id}",
        semantic_text=". ".join(parts),
    )


def _kalshi_price(m: Dict[str, Any], key: str) -> Optional[float]:
    dollars = parse_price(m.get(f"{key}_dollars"))
    if dollars is not None:
        return dollars
    return parse_price(m.get(key), scale=100.0)


def normalize_kalshi(m: Dict[str, Any]) -> MarketRecord:
    ticker = validate_market_id(m.get("ticker"), "kalshi ticker")
    title = validate_title(m.get("title") or m.get("subtitle"), "kalshi title")
    closes_at = parse_dt(m.get("close_time"))
    status = str(m.get("status") or "").lower()

    parts = [title]
    subtitle = (m.get("subtitle") or "").strip()
    if subtitle and subtitle != title:
        parts.append(subtitle)
    rules = (m.get("rules_primary") or "").strip()
    if rules:
        parts.append(rules[:SEMANTIC_TEXT_MAX_DESCRIPTION].strip())
    if m.get("market_type"):
        parts.append(f"Type: {m['market_type']}")
    resolves = _resolves_suffix(parse_dt(m.get("expiration_time")) or closes_at)
    if resolves:
        parts.append(resolves)

    series = str(m.get("event_ticker") or ticker).split("-")[0].lower()
    return MarketRecord(
        venue=Venue.KALSHI,
        market_id=ticker,
        title=title,
        prices=PriceQuad(
            yes_bid=_kalshi_price(m, "yes_bid"),
            yes_ask=_kalshi_price(m, "yes_ask"),
            no_bid=_kalshi_price(m, "no_bid"),
            no_ask=_kalshi_price(m, "no_ask"),
        ),
        opens_at=parse_dt(m.get("open_time")),
        closes_at=closes_at,
        volume=parse_number(m.get("volume")),
        category=m.get("category") or None,
        active=status in {"", "open", "active", "initialized"},
        url=f"https://kalshi.com/markets/{series}/dm/{ticker.lower()}",
        semantic_text=". ".join(parts),
    )


def normalize(payload: RawPayload) -> MarketRecord:
    if not isinstance(payload.raw, dict):
        raise MalformedUpstreamData(f"{payload.venue.value} payload is not an object")
    if isinstance(payload, PolymarketPayload):
        return normalize_polymarket(payload.raw)
    if isinstance(payload, KalshiPayload):
        return normalize_kalshi(payload.raw)
    raise MalformedUpstreamData(f"unknown payload type {type(payload).__name__}")


def wrap(venue: Venue, raw_markets: Iterable[Dict[str, Any]]) -> List[RawPayload]:
    cls = PolymarketPayload if venue is Venue.POLYMARKET else KalshiPayload
    return [cls(raw=m) for m in raw_markets]


def normalize_batch(payloads: Iterable[RawPayload]) -> Tuple[List[MarketRecord], int]:
    """Normalize a batch, skipping malformed records.

    Returns:
        (records, skipped_count)
    """
    records: List[MarketRecord] = []
    skipped = 0
    for payload in payloads:
        try:
            records.append(normalize(payload))
        except MalformedUpstreamData as exc:
            skipped += 1
            logger.debug("Skipping malformed %s record: %s", payload.venue.value, exc.message)
    if skipped:
        logger.info("Normalizer skipped %d malformed record(s)", skipped)
    return records, skipped
