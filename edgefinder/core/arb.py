"""Arbitrage evaluation for matched cross-venue pairs.

A binary contract pays 1.0, so holding YES on one venue and NO on the other
locks in a payout of 1.0 whichever way the event resolves. The pair is an
arbitrage when the cheaper of the two two-leg combinations costs less than 1.0:

- option1: buy YES on venue A (Polymarket) + buy NO on venue B (Kalshi)
- option2: buy YES on venue B + buy NO on venue A
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from edgefinder.config.constants import (
    DIRECTION_A_YES_B_NO,
    DIRECTION_B_YES_A_NO,
    STRATEGY_A_YES_B_NO,
    STRATEGY_B_YES_A_NO,
    STRATEGY_NONE,
)
from edgefinder.core.models import ArbitrageResult, MarketMatch, MatchedEvent, PriceQuad


NO_ARBITRAGE = ArbitrageResult(
    option1=None,
    option2=None,
    best_cost=None,
    is_arbitrage=False,
    profit_per_unit=0.0,
    direction=None,
    strategy=STRATEGY_NONE,
)


def evaluate(
    yes_a: Optional[float],
    no_a: Optional[float],
    yes_b: Optional[float],
    no_b: Optional[float],
) -> ArbitrageResult:
    """Compute the arbitrage economics of a price quad.

    Any missing leg short-circuits to a zero-profit, non-arbitrage result.
    On equal cost the B-yes/A-no direction is chosen.
    """
    if yes_a is None or no_a is None or yes_b is None or no_b is None:
        return NO_ARBITRAGE

    option1 = yes_a + no_b
    option2 = yes_b + no_a
    best_cost = min(option1, option2)
    is_arbitrage = best_cost < 1.0
    profit = 1.0 - best_cost if is_arbitrage else 0.0
    if option1 < option2:
        direction, strategy = DIRECTION_A_YES_B_NO, STRATEGY_A_YES_B_NO
    else:
        direction, strategy = DIRECTION_B_YES_A_NO, STRATEGY_B_YES_A_NO
    return ArbitrageResult(
        option1=option1,
        option2=option2,
        best_cost=best_cost,
        is_arbitrage=is_arbitrage,
        profit_per_unit=profit,
        direction=direction,
        strategy=strategy,
    )


def evaluate_quads(a: PriceQuad, b: PriceQuad) -> ArbitrageResult:
    return evaluate(a.buy_yes, a.buy_no, b.buy_yes, b.buy_no)


def evaluate_matches(matches: Iterable[MarketMatch]) -> List[MatchedEvent]:
    return [MatchedEvent(match=m, arb=evaluate_quads(m.a.prices, m.b.prices)) for m in matches]
