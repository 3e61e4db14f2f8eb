"""Unit and date normalization for raw producer readings.

Distances are canonicalized to miles and dates to ``YYYY-MM-DD`` strings.
Two approximations are kept on purpose and callers must accept them:

* ``normalize_distance`` without a recognizable unit treats any value above
  100 as meters. A genuine 100+ mile entry recorded in miles (an ultra, a
  long ride) is therefore shrunk by the meters factor.
* ``normalize_date`` falls back to the ingest-time UTC date when no field
  carries a ``YYYY-MM-DD`` substring, so such readings land on "today".
"""
from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Any, Optional, Tuple

METERS_TO_MILES = 0.000621371
KILOMETERS_TO_MILES = 0.621371
METERS_HEURISTIC_THRESHOLD = 100.0
# Largest count a BIGINT / SQLite INTEGER column holds.
MAX_COUNT = 2**63 - 1

QUANTITY_VALUE_KEYS = ("qty", "value", "sum", "avg")

METER_TOKENS = {"m", "meter", "meters", "metre", "metres"}
KILOMETER_TOKENS = {"km", "kilometer", "kilometers", "kilometre", "kilometres"}
MILE_TOKENS = {"mi", "mile", "miles"}

_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")
_UNIT_TOKEN_RE = re.compile(r"[a-z]+")


def today_iso() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def first_present(obj: dict, *keys: str) -> Any:
    """First value under ``keys`` that is not None, empty or zero-like.

    Producers use several aliases for one field and send ``0``/``""`` for
    "not measured", so only meaningful values win.
    """
    for key in keys:
        value = obj.get(key)
        if value is None or value == "" or value is False:
            continue
        if isinstance(value, (int, float)) and value == 0:
            continue
        return value
    return None


def split_quantity(value: Any) -> Tuple[Any, Optional[str]]:
    """Unwrap ``{"qty": 3.1, "units": "mi"}`` style objects into (number, unit)."""
    if isinstance(value, dict):
        unit = value.get("units") or value.get("unit")
        return first_present(value, *QUANTITY_VALUE_KEYS), unit if isinstance(unit, str) else None
    return value, None


def to_float(value: Any) -> Optional[float]:
    value, _ = split_quantity(value)
    if isinstance(value, bool) or value is None:
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def to_count(value: Any, limit: int = MAX_COUNT) -> Optional[int]:
    """Truncated integer, or None when unparsable or beyond what the stores can hold."""
    number = to_float(value)
    if number is None or not abs(number) <= limit:
        return None
    return int(number)


def to_int(value: Any, default: int = 0) -> int:
    count = to_count(value)
    return default if count is None else count


def distance_scale(unit: Optional[str]) -> Optional[float]:
    """Factor converting ``unit`` to miles, or None if the unit is not a distance unit."""
    if not unit or not isinstance(unit, str):
        return None
    tokens = set(_UNIT_TOKEN_RE.findall(unit.lower()))
    if tokens & MILE_TOKENS:
        return 1.0
    if tokens & KILOMETER_TOKENS:
        return KILOMETERS_TO_MILES
    if tokens & METER_TOKENS:
        return METERS_TO_MILES
    return None


def normalize_distance(value: Any, unit: Optional[str] = None) -> float:
    """Convert a raw distance to miles.

    An explicit unit wins; otherwise values above ``METERS_HEURISTIC_THRESHOLD``
    are assumed to be meters. Unparsable values normalize to 0.
    """
    raw, embedded_unit = split_quantity(value)
    number = to_float(raw)
    if number is None:
        return 0.0
    scale = distance_scale(unit) or distance_scale(embedded_unit)
    if scale is not None:
        return number * scale
    if number > METERS_HEURISTIC_THRESHOLD:
        return number * METERS_TO_MILES
    return number


def date_from_value(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        # Epoch seconds, or milliseconds for large values.
        if not math.isfinite(value) or value <= 0:
            return None
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        match = _DATE_RE.search(value)
        return match.group(0) if match else None
    return None


def normalize_date(*candidates: Any, default: Optional[str] = None) -> str:
    """Calendar date from the first candidate carrying one, else ``default`` or today (UTC)."""
    for candidate in candidates:
        found = date_from_value(candidate)
        if found:
            return found
    return default or today_iso()
