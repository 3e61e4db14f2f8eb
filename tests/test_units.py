from datetime import date, datetime, timezone

import pytest

from services.ingestion import units
from services.ingestion.units import (
    date_from_value,
    distance_scale,
    first_present,
    normalize_date,
    normalize_distance,
    to_float,
    to_int,
)


def test_small_unitless_distance_is_miles():
    assert normalize_distance(3.1) == pytest.approx(3.1)
    assert normalize_distance(100) == pytest.approx(100)


def test_large_unitless_distance_is_meters():
    assert normalize_distance(5000) == pytest.approx(5000 * 0.000621371)
    assert normalize_distance("1609.344") == pytest.approx(1.0, rel=1e-4)


def test_explicit_unit_wins_over_heuristic():
    assert normalize_distance(150, "mi") == pytest.approx(150)
    assert normalize_distance(42, "m") == pytest.approx(42 * 0.000621371)
    assert normalize_distance(10, "km") == pytest.approx(6.21371)


def test_embedded_quantity_unit():
    assert normalize_distance({"qty": 5, "units": "km"}) == pytest.approx(3.106855)
    assert normalize_distance({"qty": 2.5, "units": "mi"}) == pytest.approx(2.5)


def test_unparsable_distance_is_zero():
    assert normalize_distance(None) == 0.0
    assert normalize_distance("far") == 0.0
    assert normalize_distance(True) == 0.0


def test_distance_scale_tokens():
    assert distance_scale("mi") == 1.0
    assert distance_scale("Kilometers") == units.KILOMETERS_TO_MILES
    assert distance_scale("m") == units.METERS_TO_MILES
    assert distance_scale("count") is None
    assert distance_scale(None) is None


def test_first_present_skips_empty_values():
    obj = {"a": 0, "b": "", "c": None, "d": False, "e": 7}
    assert first_present(obj, "a", "b", "c", "d", "e") == 7
    assert first_present(obj, "a", "missing") is None


def test_numeric_coercion():
    assert to_float("12.5") == 12.5
    assert to_float({"qty": 3}) == 3.0
    assert to_float(float("nan")) is None
    assert to_float([1]) is None
    assert to_int("7.9") == 7
    assert to_int("n/a", default=-1) == -1


def test_date_from_strings_takes_calendar_prefix():
    assert date_from_value("2024-03-05T23:59:00-0800") == "2024-03-05"
    assert date_from_value("2024-03-05 07:00:00 +0100") == "2024-03-05"
    assert date_from_value("yesterday") is None


def test_date_from_native_and_epoch_values():
    assert date_from_value(date(2024, 2, 29)) == "2024-02-29"
    assert date_from_value(datetime(2024, 2, 29, 13, tzinfo=timezone.utc)) == "2024-02-29"
    assert date_from_value(1704067200) == "2024-01-01"
    assert date_from_value(1704067200000) == "2024-01-01"
    assert date_from_value(-5) is None
    assert date_from_value(True) is None


def test_normalize_date_falls_back_to_today(monkeypatch):
    monkeypatch.setattr(units, "today_iso", lambda: "2030-01-01")
    assert normalize_date(None, "not a date") == "2030-01-01"
    assert normalize_date(None, default="2024-01-01") == "2024-01-01"
    assert normalize_date(None, "2024-06-01T00:00:00Z") == "2024-06-01"


def test_counts_outside_storage_range():
    assert units.to_count(1e20) is None
    assert units.to_count(10**400) is None
    assert units.to_count(2**53) == 2**53
    assert units.to_count(float("nan")) is None
    assert units.to_count(-5.5) == -5
    assert units.to_count(300, limit=255) is None
    assert to_int(1e20, default=0) == 0
    assert to_float(10**400) is None
