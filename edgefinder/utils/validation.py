"""Input validation utilities for venue payloads and caller input.

These helpers turn loosely typed upstream values into the typed fields of the
canonical records. Required fields raise `MalformedUpstreamData`; optional
numeric fields degrade to ``None`` so a missing price stays "unknown".
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

from edgefinder.config.constants import WALLET_ADDRESS_PATTERN
from edgefinder.core.errors import MalformedUpstreamData


_WALLET_RE = re.compile(WALLET_ADDRESS_PATTERN)


def parse_price(value: Any, scale: float = 1.0) -> Optional[float]:
    """Parse a price into the unit interval.

    Args:
        value: Raw value (number or numeric string)
        scale: Divisor applied before range checking (100 for integer cents)

    Returns:
        Float in [0, 1], or None when the value is missing, unparsable or out
        of range
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        price = float(value) / scale
    except (TypeError, ValueError):
        return None
    if price != price or not 0.0 <= price <= 1.0:
        return None
    return price


def parse_number(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_dt(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def validate_market_id(market_id: Any, label: str = "market_id") -> str:
    """Validate a venue-native market identifier.

    Raises:
        MalformedUpstreamData: If the identifier is missing or blank
    """
    if market_id is None:
        raise MalformedUpstreamData(f"{label} is missing")
    market_id = str(market_id).strip()
    if not market_id:
        raise MalformedUpstreamData(f"{label} cannot be empty")
    return market_id


def validate_title(title: Any, label: str = "title") -> str:
    if title is None:
        raise MalformedUpstreamData(f"{label} is missing")
    title = str(title).strip()
    if not title:
        raise MalformedUpstreamData(f"{label} cannot be empty")
    if len(title) > 500:
        raise MalformedUpstreamData(f"{label} is too long (max 500 characters)")
    return title


def is_valid_wallet_address(address: Any) -> bool:
    return isinstance(address, str) and bool(_WALLET_RE.match(address))
