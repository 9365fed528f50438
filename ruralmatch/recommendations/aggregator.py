"""
Match aggregation.

Responsibilities:
- Normalise the attribute/relevance weights of a request.
- Blend attribute and relevance scores into one combined score.
- Explain each candidate with reasons ordered by contribution.
- Sort with a fully deterministic tie-break and truncate to top-N.
"""
from __future__ import annotations

from dataclasses import dataclass

from .models import BusinessRecord, ScoredCandidate, ScoreWeights, Subscores
from .scoring import SUBSCORE_WEIGHTS

DEGRADED_REASON = "relevance scoring unavailable"

# (threshold, phrase) per signal; a signal earns its reason at or above the threshold
_REASONS: dict[str, tuple[float, str]] = {
    "distance": (0.6, "close to you"),
    "category": (1.0, "matches your interests"),
    "availability": (1.0, "open when you need it"),
    "rating": (0.8, "highly rated"),
    "relevance": (0.6, "relevant to your request"),
}

_FALLBACK_REASONS: dict[str, str] = {
    "distance": "within your search area",
    "category": "worth a look outside your usual interests",
    "availability": "check opening hours before visiting",
    "rating": "not yet widely reviewed",
    "relevance": "may suit your request",
}

_SIGNAL_ORDER = ["distance", "category", "availability", "rating", "relevance"]


@dataclass(frozen=True)
class PartialCandidate:
    """A candidate after attribute scoring, waiting for its relevance score."""

    business: BusinessRecord
    distance_km: float
    attribute_score: float
    subscores: Subscores
    relevance_score: float | None = None
    relevance_requested: bool = False
    stated_interests: bool = False
    stated_window: bool = False


def normalize_weights(weights: ScoreWeights) -> tuple[float, float]:
    """Scale (attribute, relevance) to sum to 1; all-zero means attribute-only."""
    total = weights.attribute + weights.relevance
    if total <= 0:
        return 1.0, 0.0
    return weights.attribute / total, weights.relevance / total


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def combined_score(
    attribute_score: float,
    relevance_score: float | None,
    weights: ScoreWeights,
) -> float:
    if relevance_score is None:
        return _clamp(attribute_score)
    w_attr, w_rel = normalize_weights(weights)
    return _clamp(w_attr * attribute_score + w_rel * relevance_score)


def build_reasons(partial: PartialCandidate, weights: ScoreWeights) -> list[str]:
    """Human-readable reasons, strongest contribution first. Never empty."""
    w_attr, w_rel = normalize_weights(weights)
    if partial.relevance_score is None:
        w_attr, w_rel = 1.0, 0.0

    values = {
        "distance": partial.subscores.distance,
        "category": partial.subscores.category,
        "availability": partial.subscores.availability,
        "rating": partial.subscores.rating,
        "relevance": partial.relevance_score if partial.relevance_score is not None else 0.0,
    }
    contributions = {
        name: values[name] * SUBSCORE_WEIGHTS[name] * w_attr for name in SUBSCORE_WEIGHTS
    }
    contributions["relevance"] = values["relevance"] * w_rel

    eligible = {
        "distance": True,
        "category": partial.stated_interests,
        "availability": partial.stated_window,
        "rating": True,
        "relevance": partial.relevance_score is not None,
    }

    ranked = sorted(_SIGNAL_ORDER, key=lambda n: (-contributions[n], _SIGNAL_ORDER.index(n)))
    reasons = [
        _REASONS[name][1]
        for name in ranked
        if eligible[name] and values[name] >= _REASONS[name][0]
    ]
    if not reasons:
        top = next((n for n in ranked if eligible[n]), "distance")
        reasons.append(_FALLBACK_REASONS[top])

    if partial.relevance_requested and partial.relevance_score is None:
        reasons.append(DEGRADED_REASON)
    return reasons


def sort_key(candidate: ScoredCandidate) -> tuple[float, float, str]:
    """Combined score desc, then rating desc (absent last), then id asc."""
    rating = candidate.business.rating
    return (
        -candidate.combined_score,
        -(rating if rating is not None else -1.0),
        candidate.business.id,
    )


def combine(
    partials: list[PartialCandidate],
    weights: ScoreWeights,
    limit: int,
) -> list[ScoredCandidate]:
    """Score, explain, sort and truncate. Pure; returns fewer than ``limit`` if that is all there is."""
    scored: list[ScoredCandidate] = []
    for p in partials:
        scored.append(ScoredCandidate(
            business=p.business,
            distance_km=round(p.distance_km, 3),
            attribute_score=_clamp(p.attribute_score),
            relevance_score=p.relevance_score,
            combined_score=combined_score(p.attribute_score, p.relevance_score, weights),
            subscores=p.subscores,
            reasons=build_reasons(p, weights),
            degraded=p.relevance_requested and p.relevance_score is None,
        ))

    scored.sort(key=sort_key)
    return scored[:limit]
