from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Protocol

import numpy as np
import pandas as pd

from ..errors import StorageUnavailableError
from .models import (
    AvailabilityWindow,
    BusinessRecord,
    Category,
    DayHours,
    GeoPoint,
    PriceTier,
    Weekday,
)

CANONICAL_COLUMNS: list[str] = [
    "id",
    "name",
    "category",
    "latitude",
    "longitude",
    "postcode",
    "hours",
    "rating",
    "price_tier",
    "description",
]

_EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class CandidateFilter:
    """
    Coarse pre-filter handed to the store before any fine scoring.

    ``availability`` is advisory. A store may use it to narrow the pool, but
    DataFrameStore ignores it and leaves opening hours to the availability
    subscore, so a business closed in the window is ranked lower rather
    than dropped.
    """

    origin: GeoPoint
    radius_km: float
    categories: frozenset[Category] = field(default_factory=frozenset)
    price_tiers: frozenset[PriceTier] = field(default_factory=frozenset)
    availability: AvailabilityWindow | None = None
    limit: int = 200


class CandidateStore(Protocol):
    """Anything that can hand back a nearby candidate pool and place a postcode."""

    def find_candidates(self, candidate_filter: CandidateFilter) -> list[BusinessRecord]:
        ...

    def resolve_postcode(self, postcode: str) -> GeoPoint | None:
        ...


def _haversine_km(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    lat1, lon1 = np.radians(lat), np.radians(lon)
    lat2, lon2 = np.radians(lats), np.radians(lons)
    h = (
        np.sin((lat2 - lat1) / 2) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * _EARTH_RADIUS_KM * np.arcsin(np.minimum(1.0, np.sqrt(h)))


def _parse_hours(raw: object) -> dict[Weekday, DayHours]:
    if raw is None or (isinstance(raw, float) and np.isnan(raw)) or raw == "":
        return {}
    data = json.loads(raw) if isinstance(raw, str) else raw
    return {Weekday(day): DayHours(**spec) for day, spec in data.items()}


def _optional(value: object) -> object | None:
    return None if pd.isna(value) else value


def _row_to_record(row: pd.Series) -> BusinessRecord:
    rating = _optional(row.get("rating"))
    tier = _optional(row.get("price_tier"))
    postcode = _optional(row.get("postcode"))
    return BusinessRecord(
        id=str(row["id"]),
        name=str(row["name"]),
        category=Category(row["category"]),
        point=GeoPoint(latitude=float(row["latitude"]), longitude=float(row["longitude"])),
        postcode=str(postcode) if postcode is not None else None,
        hours=_parse_hours(_optional(row.get("hours"))),
        rating=float(rating) if rating is not None else None,
        price_tier=PriceTier(tier) if tier is not None else None,
        description=str(_optional(row.get("description")) or ""),
    )


def record_to_row(record: BusinessRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "name": record.name,
        "category": record.category.value,
        "latitude": record.point.latitude,
        "longitude": record.point.longitude,
        "postcode": record.postcode,
        "hours": json.dumps(
            {day.value: h.model_dump() for day, h in record.hours.items()}, sort_keys=True
        ),
        "rating": record.rating,
        "price_tier": record.price_tier.value if record.price_tier else None,
        "description": record.description,
    }


class DataFrameStore:
    """
    In-memory candidate store over the canonical business table.

    Geography is filtered with a vectorised haversine radius and the pool
    is capped nearest-first, so a request never sees the whole catalog.
    """

    def __init__(self, df: pd.DataFrame):
        missing = [c for c in CANONICAL_COLUMNS if c not in df.columns]
        if missing:
            raise StorageUnavailableError(f"business table is missing columns: {missing}")
        df = df.copy()
        df["id"] = df["id"].astype(str)
        df["postcode"] = df["postcode"].map(lambda p: None if pd.isna(p) else str(p).strip())
        for business_id, raw in zip(df["id"], df["hours"]):
            try:
                _parse_hours(_optional(raw))
            except (ValueError, TypeError) as exc:
                raise StorageUnavailableError(f"malformed hours for business {business_id}") from exc
        self._df = df.reset_index(drop=True)

    @classmethod
    def from_csv(cls, path: Path) -> DataFrameStore:
        try:
            df = pd.read_csv(path, dtype={"id": str, "postcode": str})
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            raise StorageUnavailableError(f"cannot read business table at {path}") from exc
        return cls(df)

    @classmethod
    def from_records(cls, records: Iterable[BusinessRecord]) -> DataFrameStore:
        rows = [record_to_row(r) for r in records]
        return cls(pd.DataFrame(rows, columns=CANONICAL_COLUMNS))

    @property
    def dataframe(self) -> pd.DataFrame:
        return self._df

    def __len__(self) -> int:
        return len(self._df)

    def find_candidates(self, candidate_filter: CandidateFilter) -> list[BusinessRecord]:
        df = self._df
        if df.empty:
            return []

        distances = _haversine_km(
            candidate_filter.origin.latitude,
            candidate_filter.origin.longitude,
            df["latitude"].to_numpy(dtype=float),
            df["longitude"].to_numpy(dtype=float),
        )
        mask = distances <= candidate_filter.radius_km

        if candidate_filter.categories:
            wanted = {c.value for c in candidate_filter.categories}
            mask &= df["category"].isin(wanted).to_numpy()

        if candidate_filter.price_tiers:
            tiers = {t.value for t in candidate_filter.price_tiers}
            mask &= df["price_tier"].isin(tiers).to_numpy()

        # Nearest first, id as a stable tie-break
        selected = df.loc[mask].assign(_distance=distances[mask])
        selected = selected.sort_values(["_distance", "id"], kind="mergesort")
        selected = selected.head(candidate_filter.limit)
        return [_row_to_record(row) for _, row in selected.iterrows()]

    def resolve_postcode(self, postcode: str) -> GeoPoint | None:
        rows = self._df[self._df["postcode"] == postcode.strip()]
        if rows.empty:
            return None
        return GeoPoint(
            latitude=float(rows["latitude"].mean()),
            longitude=float(rows["longitude"].mean()),
        )


_stores: dict[Path, DataFrameStore] = {}


def get_store(path: Path) -> DataFrameStore:
    """Return the process-wide store for ``path``, loading it on first call."""
    key = Path(path).resolve()
    if key not in _stores:
        _stores[key] = DataFrameStore.from_csv(key)
    return _stores[key]
