"""Merge extracted records into the store.

Workouts are last-write-wins per identity. Daily stats carry cumulative
totals reported by several partial syncs over a day, so they fold with
``max``. Meal calories are increments and fold with ``+`` in a separate
operation; the two folds must stay separate.
"""
from __future__ import annotations

import json
import logging
import secrets
import string
import time
from typing import Any, Dict, Iterable, List, Optional

from packages.errors import ValidationSkip
from packages.store import Store
from .classifier import classify_workout_type
from .extractor import RawReading
from .units import (
    MAX_COUNT,
    first_present,
    normalize_date,
    normalize_distance,
    split_quantity,
    to_count,
    to_float,
    to_int,
)


logger = logging.getLogger("fitness.ingest")

DISTANCE_TOLERANCE_MILES = 0.1
# Heart-rate columns are 32-bit.
HEART_RATE_LIMIT = 2**31 - 1
DAILY_FIELDS = ("steps", "distance", "calories")
# Root-array items tag themselves with this instead of naming an activity.
WORKOUT_MARKER = "workout"
_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_workout_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"workout-{int(time.time() * 1000)}-{suffix}"


def _point(p: Any) -> Optional[List[Any]]:
    if isinstance(p, dict):
        lat = first_present(p, "lat", "latitude")
        lon = first_present(p, "lon", "lng", "longitude")
        return [lat, lon]
    if isinstance(p, (list, tuple)) and len(p) >= 2:
        return [p[0], p[1]]
    return None


def parse_route(workout: Dict[str, Any]) -> List[List[Any]]:
    """Route as ``[lat, lon]`` pairs from ``route``, ``routeData`` or ``locations``; ``[]`` if unknown."""
    route = workout.get("route")
    if isinstance(route, list):
        return route

    route_data = workout.get("routeData")
    if route_data:
        try:
            points = json.loads(route_data) if isinstance(route_data, str) else route_data
            return [pair for pair in (_point(p) for p in points) if pair is not None]
        except (TypeError, ValueError) as exc:
            logger.debug("route_unparsable reason=%s", exc)

    locations = workout.get("locations")
    if isinstance(locations, list):
        return [pair for pair in (_point(p) for p in locations) if pair is not None]
    return []


def _heart_rate(value: Any) -> Optional[int]:
    return to_count(value, limit=HEART_RATE_LIMIT)


def _timestamp(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _text(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def build_workout(raw: Any) -> Dict[str, Any]:
    """Canonical workout dict for a raw producer object.

    Raises ``ValidationSkip`` when the object cannot carry an identity.
    """
    if not isinstance(raw, dict):
        raise ValidationSkip(f"workout is {type(raw).__name__}, not an object")
    raw_id = raw.get("id")
    if isinstance(raw_id, bool) or (raw_id is not None and not isinstance(raw_id, (str, int, float))):
        raise ValidationSkip("workout id is not a scalar")
    workout_id = str(raw_id) if raw_id not in (None, "") else generate_workout_id()

    label = first_present(raw, "type", "workoutActivityType", "activityType", "name")
    if isinstance(label, str) and label.lower() == WORKOUT_MARKER:
        label = first_present(raw, "workoutActivityType", "activityType", "name")
    distance_value = first_present(raw, "distance", "totalDistance")
    _, embedded_unit = split_quantity(distance_value)
    distance_unit = embedded_unit or raw.get("distanceUnit") or raw.get("distanceUnits")

    return {
        "id": workout_id,
        "type": classify_workout_type(label),
        "name": _text(first_present(raw, "name", "workoutActivityType"), "Workout"),
        "location": _text(raw.get("location"), "Unknown"),
        "date": normalize_date(raw.get("date"), raw.get("startDate"), raw.get("startTime"), raw.get("start")),
        "startTime": _timestamp(first_present(raw, "startDate", "startTime", "start")),
        "endTime": _timestamp(first_present(raw, "endDate", "endTime", "end")),
        "distance": max(0.0, normalize_distance(distance_value, distance_unit)),
        "steps": max(0, to_int(first_present(raw, "steps", "stepCount"))),
        "duration": max(0, to_int(first_present(raw, "duration", "totalTime"))),
        "calories": max(0, to_int(first_present(raw, "calories", "activeEnergy", "totalEnergyBurned"))),
        "heartRateAvg": _heart_rate(first_present(raw, "heartRateAvg", "avgHeartRate")),
        "heartRateMax": _heart_rate(first_present(raw, "heartRateMax", "maxHeartRate")),
        "route": parse_route(raw),
        "rawData": raw,
    }


def same_session(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    return (
        a.get("date") == b.get("date")
        and a.get("type") == b.get("type")
        and abs(float(a.get("distance") or 0) - float(b.get("distance") or 0)) < DISTANCE_TOLERANCE_MILES
    )


def find_existing(workouts: Iterable[Dict[str, Any]], workout: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Stored workout sharing ``workout``'s identity: same id first, else same session."""
    workouts = list(workouts)
    for existing in workouts:
        if str(existing.get("id")) == workout["id"]:
            return existing
    for existing in workouts:
        if same_session(existing, workout):
            return existing
    return None


def merge_workout(store: Store, raw: Any) -> str:
    """Insert or fully replace the workout matching ``raw``'s identity; returns the stored id.

    A session matched by (date, type, distance) keeps the id it was first
    stored under, so re-ingesting it from another producer overwrites in place.
    """
    workout = build_workout(raw)
    existing = find_existing(store.get_all_workouts(), workout)
    if existing is not None:
        workout["id"] = str(existing["id"])
        logger.debug("workout_replaced id=%s type=%s date=%s", workout["id"], workout["type"], workout["date"])
    else:
        logger.debug("workout_inserted id=%s type=%s date=%s", workout["id"], workout["type"], workout["date"])
    store.upsert_workout(workout)
    return workout["id"]


def _empty_daily(date: str) -> Dict[str, Any]:
    return {"date": date, "steps": 0, "distance": 0.0, "calories": 0}


def _coerce_daily(field: str, value: Any) -> Optional[float]:
    number = to_float(value)
    if number is None:
        return None
    if field == "distance":
        return float(number)
    return to_count(number)


def merge_daily_stat(store: Store, date: str, partial: Dict[str, Any]) -> Dict[str, Any]:
    """Raise each present field of the day's row to ``max(current, incoming)``.

    Absent fields are left untouched. Repeating a call is a no-op.
    """
    row = store.get_daily_stat(date) or _empty_daily(date)
    for field in DAILY_FIELDS:
        incoming = _coerce_daily(field, partial.get(field))
        if incoming is None:
            continue
        row[field] = max(row.get(field) or 0, incoming)
    store.upsert_daily_stat(row)
    return row


def add_meal_calories(store: Store, date: str, calories: Any) -> Dict[str, Any]:
    """Add a meal's calories to the day's row (additive, unlike ``merge_daily_stat``)."""
    row = store.get_daily_stat(date) or _empty_daily(date)
    amount = max(0, to_int(calories))
    row["calories"] = min(MAX_COUNT, int(row.get("calories") or 0) + amount)
    store.upsert_daily_stat(row)
    return row


def fold_readings(readings: Iterable[RawReading]) -> Dict[str, Dict[str, Any]]:
    """Normalize readings and fold them per date, keeping the largest value per field."""
    partials: Dict[str, Dict[str, Any]] = {}
    for reading in readings:
        if reading.metric == "distance":
            value: Any = normalize_distance(reading.value, reading.unit)
        else:
            value = to_count(reading.value)
            if value is None:
                logger.debug("reading_dropped metric=%s date=%s reason=out of range", reading.metric, reading.date)
                continue
        partial = partials.setdefault(reading.date, {})
        current = partial.get(reading.metric)
        partial[reading.metric] = value if current is None else max(current, value)
    return partials
