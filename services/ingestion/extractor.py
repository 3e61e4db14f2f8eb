"""Pull raw daily readings and raw workout objects out of webhook payloads.

Producers (Health Auto Export, Shortcuts, wearable integrations) each post a
differently shaped JSON document, and the shape drifts between app versions.
Every known shape is described by a ``Dialect``: a predicate over the payload
plus an extractor for the fragment it recognizes. ``extract`` tries all of
them in order and concatenates whatever matches, so a payload that mixes
shapes contributes everything it carries.

Extraction never raises. A fragment that does not look like its dialect says
it should is logged and dropped.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from packages.errors import MalformedPayload
from .units import first_present, normalize_date, split_quantity, to_float


logger = logging.getLogger("fitness.ingest")

METRIC_VALUE_KEYS = ("qty", "value", "sum", "avg")
METRIC_NAME_KEYS = ("name", "type", "identifier")
METRIC_DATE_KEYS = ("date", "startDate")
POINT_DATE_KEYS = ("date", "startDate", "start", "endDate", "end", "timestamp")
WORKOUT_TYPE_KEYS = ("workoutActivityType", "activityType")

STEP_KEYWORDS = ("step",)
STEP_EXCLUDED = ("length",)
DISTANCE_KEYWORDS = ("distance", "walkingrunning", "walking_running")
ENERGY_KEYWORDS = ("energy", "calorie")

# (canonical metric, vendor keys that trigger it, generic fallback key)
VENDOR_DAILY_FIELDS: Tuple[Tuple[str, Tuple[str, ...], str], ...] = (
    ("steps", ("HKQuantityTypeIdentifierStepCount", "stepCount"), "steps"),
    ("distance", ("HKQuantityTypeIdentifierDistanceWalkingRunning", "distanceWalkingRunning"), "distance"),
    ("calories", ("HKQuantityTypeIdentifierActiveEnergyBurned", "activeEnergyBurned"), "calories"),
)
DIRECT_DAILY_FIELDS = ("steps", "distance", "calories")


@dataclass
class RawReading:
    metric: str
    name: str
    date: str
    value: float
    unit: Optional[str] = None


@dataclass
class Extraction:
    readings: List[RawReading] = field(default_factory=list)
    workouts: List[Dict[str, Any]] = field(default_factory=list)
    dialects: List[str] = field(default_factory=list)
    skipped: int = 0

    def extend(self, other: "Extraction") -> None:
        self.readings.extend(other.readings)
        self.workouts.extend(other.workouts)
        self.skipped += other.skipped


@dataclass(frozen=True)
class Dialect:
    name: str
    matches: Callable[[Any], bool]
    extract: Callable[[Any], Extraction]


def classify_metric(name: str) -> Optional[str]:
    text = (name or "").lower()
    if any(k in text for k in STEP_KEYWORDS) and not any(k in text for k in STEP_EXCLUDED):
        return "steps"
    if any(k in text for k in DISTANCE_KEYWORDS):
        return "distance"
    if any(k in text for k in ENERGY_KEYWORDS):
        return "calories"
    return None


def _metric_name(metric: Dict[str, Any]) -> str:
    for key in METRIC_NAME_KEYS:
        value = metric.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _unit(obj: Dict[str, Any]) -> Optional[str]:
    unit = obj.get("units") or obj.get("unit")
    return unit if isinstance(unit, str) else None


def _quantity(value: Any) -> Tuple[Optional[float], Optional[str]]:
    """Number and embedded unit of a bare value or a ``{qty, units}`` object."""
    _, unit = split_quantity(value)
    return to_float(value), unit


def metric_readings(metric: Any) -> List[RawReading]:
    """Readings for one metric object, flat or carrying a nested ``data`` series.

    Nested series points are summed per calendar date before any unit
    conversion, giving one reading per (metric, date).
    """
    if not isinstance(metric, dict):
        raise MalformedPayload(f"metric entry is {type(metric).__name__}, not an object")
    name = _metric_name(metric)
    kind = classify_metric(name)
    if kind is None:
        logger.debug("metric_ignored name=%r", name)
        return []
    unit = _unit(metric)

    points = metric.get("data")
    if points is not None:
        if not isinstance(points, list):
            raise MalformedPayload(f"metric {name!r} data is not a list")
        totals: Dict[str, float] = {}
        for point in points:
            if not isinstance(point, dict):
                continue
            value, point_unit = _quantity(first_present(point, *METRIC_VALUE_KEYS))
            if value is None:
                continue
            unit = unit or point_unit
            day = normalize_date(*(point.get(k) for k in POINT_DATE_KEYS))
            totals[day] = totals.get(day, 0.0) + value
        readings = []
        for day, total in totals.items():
            if not math.isfinite(total):
                logger.debug("metric_total_dropped name=%r date=%s reason=overflow", name, day)
                continue
            readings.append(RawReading(kind, name, day, total, unit))
        return readings

    value, value_unit = _quantity(first_present(metric, *METRIC_VALUE_KEYS))
    if value is None:
        return []
    day = normalize_date(*(metric.get(k) for k in METRIC_DATE_KEYS))
    return [RawReading(kind, name, day, value, unit or value_unit)]


def _metrics(items: Any) -> Extraction:
    if not isinstance(items, list):
        raise MalformedPayload("metrics is not a list")
    out = Extraction()
    for item in items:
        try:
            out.readings.extend(metric_readings(item))
        except MalformedPayload as exc:
            logger.debug("metric_skipped reason=%s", exc)
            out.skipped += 1
    return out


def _workouts(items: Any) -> Extraction:
    if not isinstance(items, list):
        raise MalformedPayload("workouts is not a list")
    out = Extraction()
    for item in items:
        if isinstance(item, dict):
            out.workouts.append(item)
        else:
            out.skipped += 1
    return out


def _nested(payload: Any, key: str) -> Any:
    data = payload.get("data") if isinstance(payload, dict) else None
    return data.get(key) if isinstance(data, dict) else None


def _is_workout_like(obj: Dict[str, Any]) -> bool:
    return first_present(obj, *WORKOUT_TYPE_KEYS) is not None or obj.get("type") == "workout"


def _vendor_matches(payload: Any) -> bool:
    return isinstance(payload, dict) and any(
        first_present(payload, *keys) is not None for _, keys, _ in VENDOR_DAILY_FIELDS
    )


def _vendor_daily(payload: Dict[str, Any]) -> Extraction:
    out = Extraction()
    day = normalize_date(payload.get("date"), payload.get("startDate"))
    for metric, keys, generic in VENDOR_DAILY_FIELDS:
        present = [k for k in keys if first_present(payload, k) is not None]
        if not present:
            continue
        value, unit = _quantity(first_present(payload, *keys, generic))
        if value is not None:
            out.readings.append(RawReading(metric, present[0], day, value, unit))
    return out


def _direct_matches(payload: Any) -> bool:
    return isinstance(payload, dict) and first_present(payload, *DIRECT_DAILY_FIELDS) is not None


def _direct_daily(payload: Dict[str, Any]) -> Extraction:
    out = Extraction()
    day = normalize_date(payload.get("date"), payload.get("startDate"))
    for key in DIRECT_DAILY_FIELDS:
        value, unit = _quantity(first_present(payload, key))
        if value is not None:
            out.readings.append(RawReading(key, key, day, value, unit))
    return out


def _root_array(items: List[Any]) -> Extraction:
    out = Extraction()
    for item in items:
        if not isinstance(item, dict):
            out.skipped += 1
            continue
        if _is_workout_like(item):
            out.workouts.append(item)
        elif first_present(item, "name", "qty", "value") is not None:
            try:
                out.readings.extend(metric_readings(item))
            except MalformedPayload as exc:
                logger.debug("array_item_skipped reason=%s", exc)
                out.skipped += 1
        else:
            out.skipped += 1
    return out


DIALECTS: Tuple[Dialect, ...] = (
    Dialect("data.metrics", lambda p: _nested(p, "metrics") is not None, lambda p: _metrics(_nested(p, "metrics"))),
    Dialect("data.workouts", lambda p: _nested(p, "workouts") is not None, lambda p: _workouts(_nested(p, "workouts"))),
    Dialect(
        "metrics",
        lambda p: isinstance(p, dict) and isinstance(p.get("metrics"), list),
        lambda p: _metrics(p["metrics"]),
    ),
    Dialect(
        "workouts",
        lambda p: isinstance(p, dict) and isinstance(p.get("workouts"), list),
        lambda p: _workouts(p["workouts"]),
    ),
    Dialect(
        "single_workout",
        lambda p: isinstance(p, dict) and first_present(p, *WORKOUT_TYPE_KEYS) is not None,
        lambda p: Extraction(workouts=[p]),
    ),
    Dialect("vendor_daily", _vendor_matches, _vendor_daily),
    Dialect("direct_daily", _direct_matches, _direct_daily),
    Dialect("root_array", lambda p: isinstance(p, list), _root_array),
)


def extract(payload: Any) -> Extraction:
    result = Extraction()
    for dialect in DIALECTS:
        try:
            if not dialect.matches(payload):
                continue
            part = dialect.extract(payload)
        except MalformedPayload as exc:
            logger.debug("dialect_skipped dialect=%s reason=%s", dialect.name, exc)
            result.skipped += 1
            continue
        except Exception:
            logger.warning("dialect_failed dialect=%s", dialect.name, exc_info=True)
            result.skipped += 1
            continue
        result.extend(part)
        result.dialects.append(dialect.name)
    logger.debug(
        "extracted dialects=%s readings=%d workouts=%d skipped=%d",
        ",".join(result.dialects) or "-",
        len(result.readings),
        len(result.workouts),
        result.skipped,
    )
    return result
