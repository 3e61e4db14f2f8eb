"""Apply inbound producer payloads to the store.

Each function records the raw payload in the sync log, merges whatever it
can, stamps ``lastSync`` and reports counts. Store failures propagate to the
caller; records applied before the failure stay applied.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from packages.errors import ValidationSkip
from packages.metrics import inc
from packages.request_context import ingest_context
from packages.store import Store, utc_now_iso
from .extractor import extract
from .merger import DAILY_FIELDS, add_meal_calories, fold_readings, merge_daily_stat, merge_workout
from .units import normalize_date, to_int


logger = logging.getLogger("fitness.ingest")


@dataclass
class IngestResult:
    source: str
    readings: int = 0
    days: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    workout_ids: List[str] = field(default_factory=list)
    skipped: int = 0
    dialects: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "readings": self.readings,
            "dailyStats": len(self.days),
            "workouts": len(self.workout_ids),
            "workoutIds": list(self.workout_ids),
            "skipped": self.skipped,
            "formats": list(self.dialects),
        }


def _apply_workouts(store: Store, workouts: List[Any], result: IngestResult) -> None:
    for raw in workouts:
        try:
            result.workout_ids.append(merge_workout(store, raw))
        except ValidationSkip as exc:
            logger.info("workout_skipped reason=%s", exc)
            result.skipped += 1


def _finish(store: Store, result: IngestResult) -> IngestResult:
    store.set_last_sync_time(utc_now_iso())
    inc("ingest_payloads_total", source=result.source)
    if result.workout_ids:
        inc("ingest_workouts_total", len(result.workout_ids), source=result.source)
    if result.skipped:
        inc("ingest_skipped_total", result.skipped, source=result.source)
    logger.info(
        "ingested readings=%d days=%d workouts=%d skipped=%d",
        result.readings,
        len(result.days),
        len(result.workout_ids),
        result.skipped,
    )
    return result


def ingest_health_payload(store: Store, payload: Any, user_agent: Optional[str] = None) -> IngestResult:
    """Arbitrary producer payload: every recognized shape is applied."""
    result = IngestResult(source="health")
    with ingest_context(result.source):
        store.append_sync_log(payload, source=result.source, user_agent=user_agent)
        extraction = extract(payload)
        result.readings = len(extraction.readings)
        result.skipped = extraction.skipped
        result.dialects = list(extraction.dialects)
        for metric, count in Counter(r.metric for r in extraction.readings).items():
            inc("ingest_readings_total", count, metric=metric)

        for date, partial in sorted(fold_readings(extraction.readings).items()):
            result.days[date] = merge_daily_stat(store, date, partial)
        _apply_workouts(store, extraction.workouts, result)
        return _finish(store, result)


def ingest_workout(store: Store, raw: Any, user_agent: Optional[str] = None) -> IngestResult:
    result = IngestResult(source="workout")
    with ingest_context(result.source):
        store.append_sync_log(raw, source=result.source, user_agent=user_agent)
        _apply_workouts(store, [raw], result)
        return _finish(store, result)


def ingest_meal(store: Store, body: Any, user_agent: Optional[str] = None) -> IngestResult:
    """Meal log ``{timestamp, calories, foods, meal_type}``; calories add to the day's total."""
    result = IngestResult(source="meal")
    with ingest_context(result.source):
        store.append_sync_log(body, source=result.source, user_agent=user_agent)
        if not isinstance(body, dict) or to_int(body.get("calories")) <= 0:
            logger.info("meal_skipped reason=no calories")
            result.skipped += 1
            return _finish(store, result)
        date = normalize_date(body.get("timestamp"), body.get("date"))
        result.days[date] = add_meal_calories(store, date, body.get("calories"))
        logger.info(
            "meal_logged date=%s calories=%s meal_type=%s",
            date,
            body.get("calories"),
            body.get("meal_type") or "-",
        )
        return _finish(store, result)


def ingest_bulk(store: Store, body: Any, user_agent: Optional[str] = None) -> IngestResult:
    """Bulk upload ``{workouts: [...], dailyStats: [...]}`` in canonical units."""
    result = IngestResult(source="sync")
    with ingest_context(result.source):
        store.append_sync_log(body, source=result.source, user_agent=user_agent)
        body = body if isinstance(body, dict) else {}
        workouts = body.get("workouts")
        if isinstance(workouts, list):
            _apply_workouts(store, workouts, result)

        daily_stats = body.get("dailyStats")
        if isinstance(daily_stats, list):
            for entry in daily_stats:
                if not isinstance(entry, dict):
                    result.skipped += 1
                    continue
                date = normalize_date(entry.get("date"))
                partial = {f: entry[f] for f in DAILY_FIELDS if entry.get(f) is not None}
                result.days[date] = merge_daily_stat(store, date, partial)
        return _finish(store, result)
