from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from edgefinder.config.settings import MatcherConfig
from edgefinder.core.models import MarketMatch, MarketRecord
from edgefinder.utils.logging import get_logger


logger = get_logger("matching")


def _normalize(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v, axis=1, keepdims=True)
    n[n == 0.0] = 1.0
    return v / n


def _eligible(records: Sequence[MarketRecord], now: datetime) -> List[MarketRecord]:
    return [r for r in records if r.embedding and r.is_open(now)]


def _pick_best(sims: np.ndarray, ids: Sequence[str], floor: float) -> Optional[int]:
    """Index of the best column: highest similarity, then lowest id on ties."""
    best: Optional[int] = None
    for j in range(sims.shape[0]):
        s = float(sims[j])
        if s < floor:
            continue
        if best is None:
            best = j
            continue
        b = float(sims[best])
        if s > b or (s == b and ids[j] < ids[best]):
            best = j
    return best


class SemanticMatcher:
    """Best cross-venue counterpart per venue-A record by embedding cosine.

    Each A-side record is compared against every eligible B-side record (all
    pairs, one matrix product) and keeps the single highest-similarity
    counterpart at or above the similarity floor. Exact ties go to the
    lexicographically lowest B-side id so the result is reproducible. Several
    A-side records may share a B-side counterpart unless ``require_mutual``
    is set.
    """

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()

    def match(
        self,
        records_a: Sequence[MarketRecord],
        records_b: Sequence[MarketRecord],
        *,
        now: Optional[datetime] = None,
    ) -> List[MarketMatch]:
        now = now or datetime.now(timezone.utc)
        a_side = _eligible(records_a, now)
        b_side = _eligible(records_b, now)
        if not a_side or not b_side:
            logger.info("Nothing to match (eligible A=%d, B=%d)", len(a_side), len(b_side))
            return []

        a_side, b_side, dim = _common_dimension(a_side, b_side)
        if not a_side or not b_side:
            return []

        a_vecs = _normalize(np.asarray([r.embedding for r in a_side], dtype=np.float64))
        b_vecs = _normalize(np.asarray([r.embedding for r in b_side], dtype=np.float64))
        sims = np.clip(a_vecs @ b_vecs.T, -1.0, 1.0)  # (|A|, |B|)
        b_ids = [r.market_id for r in b_side]
        floor = self.config.similarity_floor

        pairs: List[Tuple[int, int]] = []
        for i in range(len(a_side)):
            j = _pick_best(sims[i], b_ids, floor)
            if j is not None:
                pairs.append((i, j))

        if self.config.require_mutual:
            a_ids = [r.market_id for r in a_side]
            reverse: Dict[int, Optional[int]] = {}
            for _, j in pairs:
                if j not in reverse:
                    reverse[j] = _pick_best(sims[:, j], a_ids, floor)
            pairs = [(i, j) for i, j in pairs if reverse.get(j) == i]

        matches = [
            MarketMatch(a=a_side[i], b=b_side[j], similarity=float(sims[i, j]), is_best_match=True)
            for i, j in pairs
        ]
        matches.sort(key=lambda m: (-m.similarity, m.a.market_id, m.b.market_id))
        logger.info(
            "Matched %d/%d venue-A records against %d venue-B records (dim=%d, floor=%.2f)",
            len(matches),
            len(a_side),
            len(b_side),
            dim,
            floor,
        )
        return matches


def _common_dimension(
    a_side: List[MarketRecord], b_side: List[MarketRecord]
) -> Tuple[List[MarketRecord], List[MarketRecord], int]:
    """Keep only records whose embedding has the batch's majority dimension."""
    counts: Dict[int, int] = {}
    for r in (*a_side, *b_side):
        counts[len(r.embedding)] = counts.get(len(r.embedding), 0) + 1
    dim = max(counts, key=lambda d: (counts[d], d))
    if len(counts) > 1:
        logger.warning("Mixed embedding dimensions %s; keeping dim=%d", sorted(counts), dim)
    a_kept = [r for r in a_side if len(r.embedding) == dim]
    b_kept = [r for r in b_side if len(r.embedding) == dim]
    return a_kept, b_kept, dim
