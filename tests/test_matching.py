from datetime import timedelta

import pytest

from edgefinder.config.settings import MatcherConfig
from edgefinder.core.matching import SemanticMatcher
from edgefinder.core.models import Venue


K = Venue.KALSHI


def _pairs(matches):
    return [(m.a.market_id, m.b.market_id) for m in matches]


def test_picks_highest_similarity_above_floor(make_record, now):
    a = [make_record("pm-1", embedding=(1.0, 0.0, 0.0))]
    b = [
        make_record("KX-NEAR", K, embedding=(0.95, 0.05, 0.0)),
        make_record("KX-FAR", K, embedding=(0.0, 1.0, 0.0)),
    ]
    matches = SemanticMatcher().match(a, b, now=now)
    assert _pairs(matches) == [("pm-1", "KX-NEAR")]
    assert matches[0].similarity > 0.99
    assert matches[0].is_best_match is True


def test_exact_tie_goes_to_lowest_b_id(make_record, now):
    a = [make_record("pm-1")]
    b = [make_record("KX-B", K), make_record("KX-A", K), make_record("KX-C", K)]
    matches = SemanticMatcher().match(a, b, now=now)
    assert _pairs(matches) == [("pm-1", "KX-A")]


def test_below_floor_yields_no_match(make_record, now):
    a = [make_record("pm-1", embedding=(1.0, 0.0, 0.0))]
    b = [make_record("KX-1", K, embedding=(0.5, 1.0, 0.0))]
    assert SemanticMatcher(MatcherConfig(similarity_floor=0.75)).match(a, b, now=now) == []
    assert len(SemanticMatcher(MatcherConfig(similarity_floor=0.4)).match(a, b, now=now)) == 1


def test_empty_side_returns_empty_list(make_record, now):
    a = [make_record("pm-1")]
    assert SemanticMatcher().match(a, [], now=now) == []
    assert SemanticMatcher().match([], a, now=now) == []


def test_closed_and_unembedded_records_are_ignored(make_record, now):
    a = [
        make_record("pm-closed", active=False),
        make_record("pm-expired", closes_at=now - timedelta(minutes=1)),
        make_record("pm-noemb", embedding=None),
        make_record("pm-open"),
    ]
    b = [make_record("KX-1", K)]
    assert _pairs(SemanticMatcher().match(a, b, now=now)) == [("pm-open", "KX-1")]


def test_many_to_one_unless_mutual_required(make_record, now):
    a = [
        make_record("pm-1", embedding=(1.0, 0.0, 0.0)),
        make_record("pm-2", embedding=(0.9, 0.1, 0.0)),
    ]
    b = [make_record("KX-1", K, embedding=(1.0, 0.0, 0.0))]

    loose = SemanticMatcher(MatcherConfig(require_mutual=False)).match(a, b, now=now)
    assert sorted(_pairs(loose)) == [("pm-1", "KX-1"), ("pm-2", "KX-1")]

    strict = SemanticMatcher(MatcherConfig(require_mutual=True)).match(a, b, now=now)
    assert _pairs(strict) == [("pm-1", "KX-1")]


def test_matching_is_idempotent_and_sorted(make_record, now):
    a = [
        make_record("pm-1", embedding=(1.0, 0.0, 0.0)),
        make_record("pm-2", embedding=(0.0, 1.0, 0.0)),
        make_record("pm-3", embedding=(0.0, 0.8, 0.6)),
    ]
    b = [
        make_record("KX-1", K, embedding=(0.9, 0.1, 0.0)),
        make_record("KX-2", K, embedding=(0.0, 1.0, 0.0)),
        make_record("KX-3", K, embedding=(0.0, 0.6, 0.8)),
    ]
    matcher = SemanticMatcher(MatcherConfig(similarity_floor=0.5))
    first = matcher.match(a, b, now=now)
    second = matcher.match(list(a), list(b), now=now)
    assert _pairs(first) == _pairs(second)
    assert [m.similarity for m in first] == [m.similarity for m in second]
    sims = [m.similarity for m in first]
    assert sims == sorted(sims, reverse=True)
    assert ("pm-2", "KX-2") in _pairs(first)


def test_mixed_dimensions_keep_majority(make_record, now):
    a = [make_record("pm-1", embedding=(1.0, 0.0, 0.0)), make_record("pm-odd", embedding=(1.0, 0.0))]
    b = [make_record("KX-1", K, embedding=(1.0, 0.0, 0.0))]
    matches = SemanticMatcher().match(a, b, now=now)
    assert _pairs(matches) == [("pm-1", "KX-1")]
    assert matches[0].similarity == pytest.approx(1.0)
