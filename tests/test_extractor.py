import pytest

from services.ingestion import extractor
from services.ingestion.extractor import classify_metric, extract, metric_readings
from tests.fixtures import payloads


def by_metric(extraction):
    return {(r.metric, r.date): r for r in extraction.readings}


@pytest.mark.parametrize(
    "name,expected",
    [
        ("step_count", "steps"),
        ("HKQuantityTypeIdentifierStepCount", "steps"),
        ("walking_step_length", None),
        ("walking_running_distance", "distance"),
        ("DistanceWalkingRunning", "distance"),
        ("active_energy", "calories"),
        ("dietary_calories", "calories"),
        ("heart_rate", None),
        ("", None),
    ],
)
def test_classify_metric(name, expected):
    assert classify_metric(name) == expected


def test_nested_series_sums_per_date():
    result = extract(payloads.HAE_METRICS)
    assert result.dialects == ["data.metrics"]
    assert len(result.readings) == 1
    reading = result.readings[0]
    assert (reading.metric, reading.date, reading.value) == ("steps", "2024-01-01", 7000)


def test_full_export_yields_metrics_and_workouts():
    result = extract(payloads.HAE_FULL)
    assert result.dialects == ["data.metrics", "data.workouts"]
    readings = by_metric(result)
    assert readings[("steps", "2024-01-02")].value == 9000
    assert readings[("steps", "2024-01-03")].value == 1200
    assert readings[("distance", "2024-01-02")].value == pytest.approx(3218.688)
    assert readings[("distance", "2024-01-02")].unit == "m"
    assert readings[("calories", "2024-01-02")].value == pytest.approx(410.6)
    # flights_climbed and walking_step_length are not tracked
    assert len(result.readings) == 4
    assert [w["id"] for w in result.workouts] == ["hae-run-1"]


def test_root_level_metrics_and_workouts():
    payload = {
        "metrics": [{"name": "step_count", "qty": 1234, "date": "2024-02-01"}],
        "workouts": [{"type": "Running", "date": "2024-02-01", "distance": 2}],
    }
    result = extract(payload)
    assert result.dialects == ["metrics", "workouts"]
    assert by_metric(result)[("steps", "2024-02-01")].value == 1234
    assert len(result.workouts) == 1


def test_flat_metric_value_aliases():
    readings = metric_readings({"type": "active_energy", "sum": "250", "startDate": "2024-02-03 10:00"})
    assert [(r.metric, r.date, r.value) for r in readings] == [("calories", "2024-02-03", 250.0)]


def test_single_workout_at_root():
    result = extract(payloads.GLASSES_WORKOUT)
    assert result.dialects == ["single_workout"]
    assert result.workouts == [payloads.GLASSES_WORKOUT]
    assert result.readings == []


def test_vendor_daily_identifiers():
    result = extract(payloads.SHORTCUT_VENDOR)
    assert result.dialects == ["vendor_daily"]
    readings = by_metric(result)
    assert readings[("steps", "2024-01-05")].value == 8123
    assert readings[("distance", "2024-01-05")].value == pytest.approx(3.4)
    assert readings[("calories", "2024-01-05")].value == 415


def test_direct_daily_fields_date_today(monkeypatch):
    monkeypatch.setattr(extractor, "normalize_date", lambda *a, **k: "2030-05-05")
    result = extract(payloads.SHORTCUT_DAILY)
    assert result.dialects == ["direct_daily"]
    assert {(r.metric, r.value) for r in result.readings} == {
        ("steps", 5000.0),
        ("distance", 2.1),
        ("calories", 300.0),
    }
    assert {r.date for r in result.readings} == {"2030-05-05"}


def test_direct_daily_with_start_date():
    result = extract({"steps": 10, "startDate": "2024-04-04T08:00:00Z"})
    assert [(r.metric, r.date) for r in result.readings] == [("steps", "2024-04-04")]


def test_root_array_mixes_workouts_and_metrics():
    result = extract(payloads.MIXED_ARRAY)
    assert result.dialects == ["root_array"]
    assert len(result.workouts) == 2
    assert by_metric(result)[("steps", "2024-01-07")].value == 9100
    assert result.skipped == 2


def test_mixed_dialects_all_contribute():
    payload = {
        "data": {"metrics": [{"name": "step_count", "data": [{"date": "2024-03-01", "qty": 10}]}]},
        "workoutActivityType": "Walking",
        "date": "2024-03-01",
        "steps": 500,
    }
    result = extract(payload)
    assert result.dialects == ["data.metrics", "single_workout", "direct_daily"]
    assert len(result.workouts) == 1
    assert sorted(r.value for r in result.readings) == [10, 500]


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "",
        "steps=5000",
        42,
        [],
        {},
        {"data": None},
        {"data": {"metrics": "oops"}},
        {"data": {"metrics": [None, 3, {"name": "step_count", "data": "bad"}]}},
        {"metrics": {"name": "step_count"}},
        {"unrelated": True},
    ],
)
def test_malformed_payloads_never_raise(payload):
    result = extract(payload)
    assert result.readings == []
    assert result.workouts == []


def test_malformed_fragments_are_counted_as_skipped():
    result = extract({"data": {"metrics": [None, {"name": "step_count", "data": "bad"}], "workouts": [1, {}]}})
    assert result.skipped == 3
    assert result.workouts == [{}]


def test_unexpected_dialect_errors_are_contained(monkeypatch):
    def boom(payload):
        raise KeyError("surprise")

    broken = extractor.Dialect("broken", lambda p: True, boom)
    monkeypatch.setattr(extractor, "DIALECTS", (broken,) + extractor.DIALECTS)
    result = extract(payloads.SHORTCUT_VENDOR)
    assert "broken" not in result.dialects
    assert result.skipped == 1
    assert len(result.readings) == 3


def test_points_without_values_are_ignored():
    readings = metric_readings(
        {"name": "step_count", "data": [{"date": "2024-01-01"}, "junk", {"date": "2024-01-01", "qty": 5}]}
    )
    assert [(r.date, r.value) for r in readings] == [("2024-01-01", 5.0)]


def test_quantity_objects_keep_their_units_on_daily_readings():
    vendor = extract({"date": "2024-01-01", "distanceWalkingRunning": {"qty": 5, "units": "km"}})
    direct = extract({"date": "2024-01-01", "distance": {"qty": 5, "units": "km"}})
    flat = extract({"metrics": [{"name": "distance", "date": "2024-01-01", "qty": {"qty": 5, "units": "km"}}]})
    nested = extract(
        {"data": {"metrics": [{"name": "distance", "data": [{"date": "2024-01-01", "qty": {"qty": 5, "units": "km"}}]}]}}
    )
    for result in (vendor, direct, flat, nested):
        (reading,) = result.readings
        assert (reading.metric, reading.value, reading.unit) == ("distance", 5.0, "km")


def test_metric_level_unit_wins_over_value_unit():
    (reading,) = metric_readings({"name": "distance", "units": "m", "qty": {"qty": 800, "units": "km"}})
    assert reading.unit == "m"


def test_overflowing_series_totals_are_dropped():
    readings = metric_readings(
        {
            "name": "step_count",
            "data": [
                {"date": "2024-01-01", "qty": 1e308},
                {"date": "2024-01-01", "qty": 1e308},
                {"date": "2024-01-02", "qty": 10},
            ],
        }
    )
    assert [(r.date, r.value) for r in readings] == [("2024-01-02", 10.0)]
