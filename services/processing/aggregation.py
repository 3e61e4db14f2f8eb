"""Read-side views over the canonical store: totals, breakdowns, filtered lists."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import packages.config as config
from packages.store import Store
from services.ingestion.units import date_from_value


ALL_TYPES = "all"


def _total(rows: Iterable[Dict[str, Any]], field: str) -> float:
    return sum((row.get(field) or 0) for row in rows)


def _bound(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    found = date_from_value(value)
    if found is None:
        raise ValueError(f"Invalid date bound: {value!r}")
    return found


def _by_date_desc(rows: List[Dict[str, Any]], tiebreak: Optional[str] = None) -> List[Dict[str, Any]]:
    if tiebreak:
        return sorted(rows, key=lambda r: (r.get("date") or "", r.get(tiebreak) or ""), reverse=True)
    return sorted(rows, key=lambda r: r.get("date") or "", reverse=True)


def filter_workouts(
    workouts: Iterable[Dict[str, Any]],
    workout_type: Optional[str] = None,
    date_from: Any = None,
    date_to: Any = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    lo, hi = _bound(date_from), _bound(date_to)
    rows = list(workouts)
    if workout_type and workout_type != ALL_TYPES:
        rows = [w for w in rows if w.get("type") == workout_type]
    if lo:
        rows = [w for w in rows if (w.get("date") or "") >= lo]
    if hi:
        rows = [w for w in rows if (w.get("date") or "") <= hi]
    rows = _by_date_desc(rows, tiebreak="startTime")
    if limit is not None:
        rows = rows[: max(0, limit)]
    return rows


def filter_daily(daily_stats: Iterable[Dict[str, Any]], date_from: Any = None) -> List[Dict[str, Any]]:
    lo = _bound(date_from)
    rows = list(daily_stats)
    if lo:
        rows = [d for d in rows if (d.get("date") or "") >= lo]
    return _by_date_desc(rows)


def list_workouts(
    store: Store,
    workout_type: Optional[str] = None,
    date_from: Any = None,
    date_to: Any = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    return filter_workouts(store.get_all_workouts(), workout_type, date_from, date_to, limit)


def list_daily(store: Store, date_from: Any = None) -> List[Dict[str, Any]]:
    return filter_daily(store.get_all_daily_stats(), date_from)


def summarize(
    workouts: List[Dict[str, Any]],
    daily_stats: List[Dict[str, Any]],
    recent_days: int,
) -> Dict[str, Any]:
    """Totals and per-type breakdown.

    Workouts and daily stats observe overlapping activity, so for steps,
    distance and calories the grand total is the larger of the two sums
    rather than their sum.
    """
    workout_totals = {
        "distance": float(_total(workouts, "distance")),
        "steps": int(_total(workouts, "steps")),
        "calories": int(_total(workouts, "calories")),
        "duration": int(_total(workouts, "duration")),
    }
    daily_totals = {
        "steps": int(_total(daily_stats, "steps")),
        "distance": float(_total(daily_stats, "distance")),
        "calories": int(_total(daily_stats, "calories")),
    }

    by_type: Dict[str, Dict[str, Any]] = {}
    for w in workouts:
        bucket = by_type.setdefault(
            w.get("type") or "walk",
            {"count": 0, "distance": 0.0, "steps": 0, "calories": 0, "duration": 0},
        )
        bucket["count"] += 1
        bucket["distance"] += float(w.get("distance") or 0)
        bucket["steps"] += int(w.get("steps") or 0)
        bucket["calories"] += int(w.get("calories") or 0)
        bucket["duration"] += int(w.get("duration") or 0)

    return {
        "totalWorkouts": len(workouts),
        "totalDistance": max(workout_totals["distance"], daily_totals["distance"]),
        "totalSteps": max(workout_totals["steps"], daily_totals["steps"]),
        "totalCalories": max(workout_totals["calories"], daily_totals["calories"]),
        "totalDuration": workout_totals["duration"],
        "workoutTotals": workout_totals,
        "dailyTotals": daily_totals,
        "byType": by_type,
        "recentDaily": _by_date_desc(daily_stats)[: max(0, recent_days)],
    }


def compute_stats(store: Store, recent_days: Optional[int] = None) -> Dict[str, Any]:
    days = config.RECENT_DAYS if recent_days is None else recent_days
    stats = summarize(store.get_all_workouts(), store.get_all_daily_stats(), days)
    stats["lastSync"] = store.get_last_sync_time()
    return stats
