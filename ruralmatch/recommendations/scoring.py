"""
Attribute scoring.

Responsibilities:
- Turn one business record and one user context into four structured
  subscores (distance, category, availability, rating).
- Blend them with fixed weights into an attribute score in [0, 1].
- Reject malformed input with a validation error instead of scoring it 0.

Everything here is pure: no I/O and no external calls.
"""
from __future__ import annotations

import math
import re

from ..errors import MatchValidationError
from .models import (
    AvailabilityWindow,
    BusinessRecord,
    Category,
    DayHours,
    GeoPoint,
    Subscores,
    UserContext,
)

DEFAULT_MAX_DISTANCE_KM = 50.0
OFF_CATEGORY_SCORE = 0.3
NEUTRAL_SCORE = 0.5

SUBSCORE_WEIGHTS: dict[str, float] = {
    "distance": 0.35,
    "category": 0.25,
    "availability": 0.2,
    "rating": 0.2,
}

_EARTH_RADIUS_KM = 6371.0
_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_MINUTES_PER_DAY = 24 * 60


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlon = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * _EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def distance_subscore(distance_km: float, max_distance_km: float | None) -> float:
    """1.0 at the user's door, decaying linearly to 0.0 at the max distance."""
    if distance_km is None or math.isnan(distance_km) or distance_km < 0:
        raise MatchValidationError(f"distance must be a non-negative number, got {distance_km!r}")
    limit = max_distance_km if max_distance_km else DEFAULT_MAX_DISTANCE_KM
    if limit <= 0:
        raise MatchValidationError(f"max distance must be positive, got {limit!r}")
    return max(0.0, 1.0 - distance_km / limit)


def category_subscore(category: Category, preferred: list[Category]) -> float:
    if not preferred or category in preferred:
        return 1.0
    return OFF_CATEGORY_SCORE


def _parse_hhmm(value: str | None, *, allow_midnight_end: bool = False) -> int:
    if allow_midnight_end and value == "24:00":
        return _MINUTES_PER_DAY
    match = _HHMM_RE.match(value or "")
    if not match:
        raise MatchValidationError(f"malformed time of day: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def availability_subscore(hours: DayHours | None, window: AvailabilityWindow | None) -> float:
    """Fraction of the requested window during which the business is open.

    No window means any time suits the user. A day with no hours on record
    scores neutral rather than closed.
    """
    if window is None:
        return 1.0
    if hours is None:
        return NEUTRAL_SCORE
    if hours.closed:
        return 0.0
    if hours.open is None and hours.close is None:
        return NEUTRAL_SCORE

    opens = _parse_hhmm(hours.open)
    closes = _parse_hhmm(hours.close, allow_midnight_end=True)
    if closes <= opens:
        # Trades past midnight
        closes += _MINUTES_PER_DAY

    start = window.start.hour * 60 + window.start.minute
    end = window.end.hour * 60 + window.end.minute
    if closes > _MINUTES_PER_DAY and end <= opens:
        # Early-morning window inside the previous evening's trading
        start += _MINUTES_PER_DAY
        end += _MINUTES_PER_DAY
    overlap = min(end, closes) - max(start, opens)
    if overlap <= 0:
        return 0.0
    return min(1.0, overlap / (end - start))


def rating_subscore(rating: float | None) -> float:
    if rating is None:
        return NEUTRAL_SCORE
    if math.isnan(rating) or not 0.0 <= rating <= 5.0:
        raise MatchValidationError(f"rating must be within 0-5, got {rating!r}")
    return rating / 5.0


def score(
    context: UserContext,
    business: BusinessRecord,
    max_distance_km: float | None = None,
) -> tuple[float, Subscores]:
    """Return ``(attribute_score, subscores)`` for one candidate.

    The context must already carry coordinates; postcode resolution happens
    upstream. ``max_distance_km`` is the radius the caller searched; without
    it the user's own maximum, then the module default, applies.
    """
    origin = context.location.point
    if origin is None:
        raise MatchValidationError(
            f"user {context.user_id!r} has no resolved coordinates to score against"
        )

    prefs = context.preferences
    window = prefs.availability
    radius = max_distance_km or prefs.max_distance_km
    subscores = Subscores(
        distance=distance_subscore(haversine_km(origin, business.point), radius),
        category=category_subscore(business.category, prefs.categories),
        availability=availability_subscore(
            business.hours.get(window.day) if window else None, window
        ),
        rating=rating_subscore(business.rating),
    )

    total = sum(getattr(subscores, name) * w for name, w in SUBSCORE_WEIGHTS.items())
    return max(0.0, min(1.0, total)), subscores
