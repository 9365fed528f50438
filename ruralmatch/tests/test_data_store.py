import json
from datetime import time
from pathlib import Path

import pandas as pd
import pytest

from ruralmatch.errors import StorageUnavailableError
from ruralmatch.recommendations.data_store import CandidateFilter, DataFrameStore, get_store
from ruralmatch.recommendations.models import AvailabilityWindow, Category, GeoPoint, PriceTier, Weekday

ORIGIN = GeoPoint(latitude=-32.25, longitude=148.60)


@pytest.fixture
def store(make_business):
    return DataFrameStore.from_records([
        make_business("far", lat_offset=0.2, category=Category.service),
        make_business("mid", lat_offset=0.05, category=Category.farm_related),
        make_business("near-b", lat_offset=0.01, category=Category.retail),
        make_business("near-a", lat_offset=0.01, category=Category.economic_opportunity, postcode="2820"),
        make_business("remote", lat_offset=2.0),
    ])


def test_radius_and_nearest_first_order(store):
    found = store.find_candidates(CandidateFilter(origin=ORIGIN, radius_km=30.0))

    assert [b.id for b in found] == ["near-a", "near-b", "mid", "far"]


def test_pool_is_capped_nearest_first(store):
    found = store.find_candidates(CandidateFilter(origin=ORIGIN, radius_km=500.0, limit=2))

    assert [b.id for b in found] == ["near-a", "near-b"]


def test_category_filter(store):
    found = store.find_candidates(CandidateFilter(
        origin=ORIGIN, radius_km=30.0, categories=frozenset({Category.economic_opportunity}),
    ))

    assert [b.id for b in found] == ["near-a"]


def test_price_filter(make_business):
    store = DataFrameStore.from_records([
        make_business("cheap").model_copy(update={"price_tier": PriceTier.budget}),
        make_business("dear").model_copy(update={"price_tier": PriceTier.premium}),
        make_business("unknown"),
    ])

    found = store.find_candidates(CandidateFilter(
        origin=ORIGIN, radius_km=10.0, price_tiers=frozenset({PriceTier.budget}),
    ))

    assert [b.id for b in found] == ["cheap"]


def test_records_survive_the_table(make_business):
    original = make_business(
        "x", rating=None, description="Eggs, honey and firewood",
        hours={Weekday.monday: {"open": "08:00", "close": "12:00"}, Weekday.sunday: {"closed": True}},
    )

    (found,) = DataFrameStore.from_records([original]).find_candidates(
        CandidateFilter(origin=ORIGIN, radius_km=1.0)
    )

    assert found == original


def test_resolve_postcode(store):
    point = store.resolve_postcode("2820")

    assert point == GeoPoint(latitude=ORIGIN.latitude + 0.01, longitude=ORIGIN.longitude)
    assert store.resolve_postcode("0000") is None


def test_empty_store(make_business):
    store = DataFrameStore.from_records([])

    assert len(store) == 0
    assert store.find_candidates(CandidateFilter(origin=ORIGIN, radius_km=10.0)) == []


def test_missing_file_is_storage_unavailable(tmp_path: Path):
    with pytest.raises(StorageUnavailableError):
        DataFrameStore.from_csv(tmp_path / "nope.csv")


def test_missing_columns_is_storage_unavailable():
    with pytest.raises(StorageUnavailableError):
        DataFrameStore(pd.DataFrame({"id": ["a"], "name": ["A"]}))


def test_malformed_hours_fail_at_load(make_business):
    df = DataFrameStore.from_records([make_business("a")]).dataframe.copy()
    df.loc[0, "hours"] = json.dumps({"monday": {"open": "9am", "close": "17:00", "closed": False}})

    with pytest.raises(StorageUnavailableError, match="business a"):
        DataFrameStore(df)


def test_malformed_hours_in_csv_fail_at_load(make_business, tmp_path: Path):
    path = tmp_path / "businesses.csv"
    df = DataFrameStore.from_records([make_business("a"), make_business("b")]).dataframe.copy()
    df.loc[1, "hours"] = json.dumps({"monday": {"open": "09:00", "close": "25:00", "closed": False}})
    df.to_csv(path, index=False)

    with pytest.raises(StorageUnavailableError):
        DataFrameStore.from_csv(path)


def test_availability_does_not_drop_closed_businesses(make_business):
    store = DataFrameStore.from_records([
        make_business("open", hours={Weekday.saturday: {"open": "08:00", "close": "17:00"}}),
        make_business("shut", lat_offset=0.01, hours={Weekday.saturday: {"closed": True}}),
    ])
    window = AvailabilityWindow(day=Weekday.saturday, start=time(9, 0), end=time(11, 0))

    found = store.find_candidates(CandidateFilter(origin=ORIGIN, radius_km=10.0, availability=window))

    assert [b.id for b in found] == ["open", "shut"]


def test_get_store_is_cached_per_path(make_business, tmp_path: Path):
    first_path = tmp_path / "first.csv"
    second_path = tmp_path / "second.csv"
    DataFrameStore.from_records([make_business("a")]).dataframe.to_csv(first_path, index=False)
    DataFrameStore.from_records(
        [make_business("b"), make_business("c", lat_offset=0.01)]
    ).dataframe.to_csv(second_path, index=False)

    first = get_store(first_path)
    second = get_store(second_path)

    assert get_store(first_path) is first
    assert second is not first
    assert len(first) == 1
    assert len(second) == 2
