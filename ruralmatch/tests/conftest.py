from __future__ import annotations

import asyncio
import json
import re

import pytest

from ruralmatch.errors import OracleTransportError
from ruralmatch.llm.config import LLMConfig
from ruralmatch.llm.groq_client import RelevanceOracleClient
from ruralmatch.recommendations.models import (
    AvailabilityWindow,
    BusinessRecord,
    Category,
    DayHours,
    GeoPoint,
    Location,
    Preferences,
    UserContext,
)

ORIGIN = GeoPoint(latitude=-32.25, longitude=148.60)

_ROW_RE = re.compile(r"^\| (?!ID \|)([^|\s]+) \|", re.MULTILINE)


class FakeOracle(RelevanceOracleClient):
    """Deterministic oracle: canned scores per id, optional hangs and failures."""

    def __init__(
        self,
        scores: dict[str, float] | None = None,
        *,
        default: float = 0.5,
        hang_ids: set[str] | None = None,
        fail_ids: set[str] | None = None,
        delay: float = 0.0,
        config: LLMConfig | None = None,
    ):
        super().__init__(config or LLMConfig(api_key="test-key", timeout=0.2, backoff_base=0.0))
        self.scores = scores or {}
        self.default = default
        self.hang_ids = hang_ids or set()
        self.fail_ids = fail_ids or set()
        self.delay = delay
        self.calls: list[list[str]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.cancelled = 0

    async def _complete(self, messages):
        ids = _ROW_RE.findall(messages[-1]["content"])
        self.calls.append(ids)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.hang_ids & set(ids):
                await asyncio.sleep(10)
            if self.fail_ids & set(ids):
                raise OracleTransportError("connection reset")
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1
        return json.dumps({
            "scores": [{"id": i, "score": self.scores.get(i, self.default)} for i in ids]
        })


def _business(
    id: str,
    *,
    lat_offset: float = 0.0,
    category: Category = Category.retail,
    rating: float | None = 4.0,
    hours: dict | None = None,
    description: str = "",
    postcode: str | None = "2830",
    name: str | None = None,
) -> BusinessRecord:
    return BusinessRecord(
        id=id,
        name=name or f"Business {id}",
        category=category,
        point=GeoPoint(latitude=ORIGIN.latitude + lat_offset, longitude=ORIGIN.longitude),
        postcode=postcode,
        hours={day: DayHours(**spec) for day, spec in (hours or {}).items()},
        rating=rating,
        description=description,
    )


def _context(
    *,
    intent: str | None = None,
    categories: list[Category] | None = None,
    max_distance_km: float | None = None,
    window: AvailabilityWindow | None = None,
    postcode: str | None = None,
    point: GeoPoint | None = ORIGIN,
) -> UserContext:
    return UserContext(
        user_id="u-1",
        location=Location(postcode=postcode, point=point),
        intent=intent,
        preferences=Preferences(
            categories=categories or [],
            max_distance_km=max_distance_km,
            availability=window,
        ),
    )


@pytest.fixture
def make_business():
    return _business


@pytest.fixture
def make_context():
    return _context


@pytest.fixture
def fake_oracle():
    return FakeOracle
