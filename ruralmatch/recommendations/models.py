from __future__ import annotations

import re
from datetime import time
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class Category(str, Enum):
    retail = "retail"
    service = "service"
    farm_related = "farm-related"
    economic_opportunity = "economic-opportunity"
    other = "other"


class PriceTier(str, Enum):
    budget = "$"
    moderate = "$$"
    premium = "$$$"
    luxury = "$$$$"


class Weekday(str, Enum):
    monday = "monday"
    tuesday = "tuesday"
    wednesday = "wednesday"
    thursday = "thursday"
    friday = "friday"
    saturday = "saturday"
    sunday = "sunday"


# ── Request side ────────────────────────────────────────────────────────


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)


class Location(BaseModel):
    """Either a postcode or coordinates; coordinates win when both are given."""

    model_config = ConfigDict(frozen=True)

    postcode: str | None = Field(default=None, min_length=1)
    point: GeoPoint | None = None

    @model_validator(mode="after")
    def _require_postcode_or_point(self) -> Location:
        if self.point is None and not self.postcode:
            raise ValueError("location needs a postcode or coordinates")
        return self


class AvailabilityWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    day: Weekday
    start: time
    end: time

    @model_validator(mode="after")
    def _end_after_start(self) -> AvailabilityWindow:
        if self.end <= self.start:
            raise ValueError("availability window must end after it starts")
        return self


class Preferences(BaseModel):
    model_config = ConfigDict(frozen=True)

    categories: list[Category] = Field(default_factory=list)
    max_distance_km: float | None = Field(default=None, gt=0.0)
    availability: AvailabilityWindow | None = None
    price_tiers: list[PriceTier] = Field(default_factory=list)


class UserContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    location: Location
    intent: str | None = Field(
        default=None, max_length=1000, description="Free-text statement of what the user is after"
    )
    preferences: Preferences = Field(default_factory=Preferences)

    @property
    def has_intent(self) -> bool:
        return bool(self.intent and self.intent.strip())


class ScoreWeights(BaseModel):
    """Attribute vs relevance weights. Need not sum to 1; normalised at aggregation."""

    model_config = ConfigDict(frozen=True)

    attribute: float = Field(default=0.6, ge=0.0)
    relevance: float = Field(default=0.4, ge=0.0)


class MatchRequest(BaseModel):
    context: UserContext
    limit: int = Field(default=10, ge=1, le=50)
    weights: ScoreWeights = Field(default_factory=ScoreWeights)


class OpportunityRequest(BaseModel):
    context: UserContext
    limit: int = Field(default=10, ge=1, le=50)
    weights: ScoreWeights = Field(default_factory=ScoreWeights)


# ── Catalog side ────────────────────────────────────────────────────────


class DayHours(BaseModel):
    """Opening hours for one weekday as ``HH:MM`` strings, or a closed flag.

    Times are checked when the record is built, so a malformed catalog entry
    fails on load rather than on the first request that asks about that day.
    ``24:00`` is allowed as a closing time.
    """

    model_config = ConfigDict(frozen=True)

    open: str | None = None
    close: str | None = None
    closed: bool = False

    @field_validator("open", "close")
    @classmethod
    def _check_hhmm(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            return None
        if info.field_name == "close" and value == "24:00":
            return value
        if not _HHMM_RE.match(value):
            raise ValueError(f"malformed time of day: {value!r}")
        return value

    @model_validator(mode="after")
    def _open_and_close_together(self) -> DayHours:
        if not self.closed and (self.open is None) != (self.close is None):
            raise ValueError("opening hours need both an open and a close time")
        return self


class BusinessRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    category: Category = Category.other
    point: GeoPoint
    postcode: str | None = None
    hours: dict[Weekday, DayHours] = Field(default_factory=dict)
    rating: float | None = None
    price_tier: PriceTier | None = None
    description: str = ""


class Subscores(BaseModel):
    distance: float
    category: float
    availability: float
    rating: float


# ── Response side ───────────────────────────────────────────────────────


class ScoredCandidate(BaseModel):
    business: BusinessRecord
    distance_km: float
    attribute_score: float = Field(..., ge=0.0, le=1.0)
    relevance_score: float | None = Field(default=None, ge=0.0, le=1.0)
    combined_score: float = Field(..., ge=0.0, le=1.0)
    subscores: Subscores
    reasons: list[str] = Field(default_factory=list)
    degraded: bool = False


class MatchResponse(BaseModel):
    candidates: list[ScoredCandidate]
    degraded: bool = False
    total_candidates: int = 0
    batches: int = 0
    failed_batches: int = 0


class InsightType(str, Enum):
    supply_chain = "supply-chain"
    market_gap = "market-gap"
    jobs = "jobs"


class InsightPriority(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class OpportunityInsight(BaseModel):
    type: InsightType
    title: str
    description: str
    business_ids: list[str] = Field(default_factory=list)
    priority: InsightPriority


class AreaInsightsResponse(BaseModel):
    insights: list[OpportunityInsight]
    businesses_considered: int
