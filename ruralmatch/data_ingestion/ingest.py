from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List

import pandas as pd
from pydantic import ValidationError

from ..recommendations.data_store import CANONICAL_COLUMNS
from ..recommendations.models import Category, DayHours, PriceTier, Weekday
from .config import DEFAULT_INGESTION_CONFIG, IngestionConfig

logger = logging.getLogger(__name__)

# Directory categories are free text; first keyword hit wins
_CATEGORY_KEYWORDS: list[tuple[Category, tuple[str, ...]]] = [
    (Category.economic_opportunity, ("employment", "job", "training", "economic", "opportunit", "grant")),
    (Category.farm_related, ("agri", "farm", "livestock", "crop", "produce", "horticult", "rural supplies")),
    (Category.retail, ("retail", "shop", "store", "food & beverage", "grocer", "market")),
    (Category.service, ("service", "health", "transport", "trade", "repair", "finance", "education", "technology")),
]


def _map_category(raw: str | None) -> str:
    text = (raw or "").strip().lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in text for k in keywords):
            return category.value
    return Category.other.value


def _normalize_rating(average: Any, count: Any) -> float | None:
    try:
        value = float(average)
    except (TypeError, ValueError):
        return None
    if pd.isna(value):
        return None
    # Directory records default the average to 0 until someone reviews
    if value == 0.0 and (count is None or pd.isna(count) or int(count) == 0):
        return None

    # Clamp to [0, 5]
    return max(0.0, min(5.0, value))


def _map_price_tier(raw: Any) -> str | None:
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return None
    try:
        return PriceTier(str(raw).strip()).value
    except ValueError:
        return None


def _normalize_hours(raw: dict[str, Any] | None) -> str:
    hours: dict[str, dict[str, Any]] = {}
    for day, spec in (raw or {}).items():
        key = str(day).strip().lower()
        if key not in Weekday.__members__ or not isinstance(spec, dict):
            continue
        try:
            day_hours = DayHours(
                open=spec.get("open") or None,
                close=spec.get("close") or None,
                closed=bool(spec.get("closed", False)),
            )
        except ValidationError:
            logger.warning("Dropping malformed %s hours: %r", key, spec)
            continue
        hours[key] = day_hours.model_dump()
    return json.dumps(hours, sort_keys=True)


def run_ingestion(config: IngestionConfig = DEFAULT_INGESTION_CONFIG) -> Path:
    """
    Execute the business ingestion pipeline.

    Steps:
    - Load the raw JSON export of directory documents.
    - Drop inactive or unlocated businesses.
    - Map raw fields into the canonical business table.
    - Persist cleaned data as CSV for the candidate store.
    """

    # Ensure directories exist
    config.processed_data_dir.mkdir(parents=True, exist_ok=True)

    with open(config.raw_export_path, encoding="utf-8") as f:
        documents: List[dict[str, Any]] = json.load(f)

    documents = [d for d in documents if d.get("isActive", True)]
    df = pd.json_normalize(documents)

    def _column(name: str) -> pd.Series:
        if name in df.columns:
            return df[name]
        return pd.Series([None] * len(df), index=df.index, dtype=object)

    # Build canonical DataFrame
    canonical = pd.DataFrame(index=df.index)
    canonical["id"] = _column("_id").fillna(_column("id")).astype(str)
    canonical["name"] = _column("name").fillna("")
    canonical["category"] = _column("category").apply(_map_category)
    canonical["latitude"] = pd.to_numeric(_column("location.coordinates.latitude"), errors="coerce")
    canonical["longitude"] = pd.to_numeric(_column("location.coordinates.longitude"), errors="coerce")
    canonical["postcode"] = _column("location.postcode")
    canonical["hours"] = [_normalize_hours(d.get("businessHours")) for d in documents]
    canonical["rating"] = [
        _normalize_rating(avg, cnt)
        for avg, cnt in zip(_column("ratings.average"), _column("ratings.count"))
    ]
    canonical["price_tier"] = _column("priceRange").apply(_map_price_tier)
    canonical["description"] = _column("description").fillna("")

    canonical = canonical.dropna(subset=["latitude", "longitude"])

    # Ensure all expected columns exist and order them
    canonical = canonical[CANONICAL_COLUMNS]

    # Write processed CSV
    output_path = config.processed_path
    canonical.to_csv(output_path, index=False)
    return output_path


if __name__ == "__main__":
    path = run_ingestion()
    print(f"Ingestion complete. Processed data saved to: {path}")
