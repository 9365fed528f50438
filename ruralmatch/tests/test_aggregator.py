import pytest

from ruralmatch.recommendations.aggregator import (
    DEGRADED_REASON,
    PartialCandidate,
    combine,
    combined_score,
    normalize_weights,
)
from ruralmatch.recommendations.models import ScoreWeights, Subscores

DEFAULT_WEIGHTS = ScoreWeights()


def _partial(business, attribute_score, relevance=None, requested=False, subscores=None, distance=1.0):
    return PartialCandidate(
        business=business,
        distance_km=distance,
        attribute_score=attribute_score,
        subscores=subscores or Subscores(distance=0.9, category=1.0, availability=1.0, rating=0.8),
        relevance_score=relevance,
        relevance_requested=requested,
    )


def test_normalize_weights_scales_to_one():
    assert normalize_weights(ScoreWeights(attribute=3, relevance=1)) == pytest.approx((0.75, 0.25))


def test_normalize_weights_all_zero_is_attribute_only():
    assert normalize_weights(ScoreWeights(attribute=0, relevance=0)) == (1.0, 0.0)


def test_combined_score_blends_with_relevance():
    assert combined_score(0.5, 1.0, DEFAULT_WEIGHTS) == pytest.approx(0.6 * 0.5 + 0.4 * 1.0)


def test_combined_score_without_relevance_is_attribute_score():
    assert combined_score(0.42, None, DEFAULT_WEIGHTS) == pytest.approx(0.42)


def test_relevance_breaks_equal_attributes(make_business):
    good = _partial(make_business("a"), 0.7, relevance=0.9, requested=True)
    poor = _partial(make_business("b"), 0.7, relevance=0.1, requested=True)

    ranked = combine([poor, good], DEFAULT_WEIGHTS, 10)

    assert [c.business.id for c in ranked] == ["a", "b"]
    assert ranked[0].combined_score > ranked[1].combined_score


def test_tie_break_by_rating_then_id(make_business):
    partials = [
        _partial(make_business("c", rating=4.0), 0.6),
        _partial(make_business("b", rating=None), 0.6),
        _partial(make_business("a", rating=4.0), 0.6),
        _partial(make_business("d", rating=4.8), 0.6),
    ]

    ranked = combine(partials, DEFAULT_WEIGHTS, 10)

    assert [c.business.id for c in ranked] == ["d", "a", "c", "b"]


def test_order_is_independent_of_input_order(make_business):
    partials = [_partial(make_business(str(i), rating=3.0), 0.5 + (i % 3) * 0.1) for i in range(9)]

    forward = combine(partials, DEFAULT_WEIGHTS, 9)
    backward = combine(list(reversed(partials)), DEFAULT_WEIGHTS, 9)

    assert forward == backward


def test_truncates_to_limit(make_business):
    partials = [_partial(make_business(str(i)), i / 10) for i in range(5)]

    ranked = combine(partials, DEFAULT_WEIGHTS, 3)

    assert [c.business.id for c in ranked] == ["4", "3", "2"]


def test_fewer_candidates_than_limit(make_business):
    ranked = combine([_partial(make_business("only"), 0.5)], DEFAULT_WEIGHTS, 3)

    assert len(ranked) == 1


def test_missing_relevance_marks_candidate_degraded(make_business):
    ranked = combine([_partial(make_business("a"), 0.6, requested=True)], DEFAULT_WEIGHTS, 10)

    candidate = ranked[0]
    assert candidate.degraded
    assert candidate.relevance_score is None
    assert candidate.combined_score == pytest.approx(0.6)
    assert candidate.reasons[-1] == DEGRADED_REASON


def test_attribute_only_request_is_not_degraded(make_business):
    ranked = combine([_partial(make_business("a"), 0.6)], DEFAULT_WEIGHTS, 10)

    assert not ranked[0].degraded
    assert DEGRADED_REASON not in ranked[0].reasons


def test_reasons_never_empty(make_business):
    weak = Subscores(distance=0.1, category=0.3, availability=0.0, rating=0.2)

    ranked = combine([_partial(make_business("a"), 0.1, subscores=weak)], DEFAULT_WEIGHTS, 10)

    assert len(ranked[0].reasons) == 1
    assert ranked[0].reasons[0] != DEGRADED_REASON


def test_reasons_follow_contribution(make_business):
    subscores = Subscores(distance=0.9, category=1.0, availability=1.0, rating=1.0)
    partial = _partial(make_business("a"), 0.9, relevance=0.95, requested=True, subscores=subscores)

    reasons = combine([partial], DEFAULT_WEIGHTS, 10)[0].reasons

    assert reasons[0] == "relevant to your request"
    assert "close to you" in reasons
    assert "highly rated" in reasons
    # No stated interests or window, so those reasons are not claimed
    assert "matches your interests" not in reasons
    assert "open when you need it" not in reasons
