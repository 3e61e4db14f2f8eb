"""Relational store backend (SQLite file or Postgres via ``FITNESS_DB_URL``)."""
from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from packages import db
from packages.errors import StoreUnavailable
from packages.store import Store, utc_now_iso


logger = logging.getLogger("fitness.store")

WORKOUT_COLUMNS = (
    "id", "date", "type", "name", "location", "start_time", "end_time",
    "distance", "steps", "duration", "calories",
    "heart_rate_avg", "heart_rate_max", "route_json", "raw_json",
)


def _loads(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        return default


def workout_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "type": row["type"],
        "name": row["name"],
        "location": row["location"],
        "date": row["date"],
        "startTime": row["start_time"],
        "endTime": row["end_time"],
        "distance": float(row["distance"] or 0),
        "steps": int(row["steps"] or 0),
        "duration": int(row["duration"] or 0),
        "calories": int(row["calories"] or 0),
        "heartRateAvg": row["heart_rate_avg"],
        "heartRateMax": row["heart_rate_max"],
        "route": _loads(row["route_json"], []),
        "rawData": _loads(row["raw_json"], None),
    }


def workout_to_params(workout: Dict[str, Any]) -> tuple:
    return (
        str(workout["id"]),
        workout["date"],
        workout["type"],
        workout.get("name") or "Workout",
        workout.get("location") or "Unknown",
        workout.get("startTime"),
        workout.get("endTime"),
        float(workout.get("distance") or 0),
        int(workout.get("steps") or 0),
        int(workout.get("duration") or 0),
        int(workout.get("calories") or 0),
        workout.get("heartRateAvg"),
        workout.get("heartRateMax"),
        json.dumps(workout.get("route") or []),
        json.dumps(workout.get("rawData")),
    )


def daily_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "date": row["date"],
        "steps": int(row["steps"] or 0),
        "distance": float(row["distance"] or 0),
        "calories": int(row["calories"] or 0),
    }


class SqlStore(Store):
    def __init__(
        self,
        url: Optional[str] = None,
        path: Optional[Path] = None,
        sync_log_limit: Optional[int] = None,
    ):
        self.url = url
        self.path = path
        self.sync_log_limit = sync_log_limit
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    @contextmanager
    def _conn(self) -> Iterator[db.Connection]:
        try:
            conn = db.connect(self.url, self.path)
        except db.DB_ERRORS + (RuntimeError, OSError) as exc:
            raise StoreUnavailable(f"Database connection failed: {exc}") from exc
        try:
            with conn:
                self._ensure_schema(conn)
                yield conn
        except db.DB_ERRORS + (OverflowError,) as exc:
            logger.exception("store_error")
            raise StoreUnavailable(f"Database operation failed: {exc}") from exc

    def _ensure_schema(self, conn: db.Connection) -> None:
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            conn.apply_schema()
            self._schema_ready = True

    def get_all_workouts(self) -> List[Dict[str, Any]]:
        with self._conn() as conn:
            rows = conn.rows(f"SELECT {', '.join(WORKOUT_COLUMNS)} FROM workouts ORDER BY date, id")
            return [workout_from_row(r) for r in rows]

    def upsert_workout(self, workout: Dict[str, Any]) -> None:
        placeholders = ", ".join("?" for _ in WORKOUT_COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in WORKOUT_COLUMNS if c != "id")
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO workouts({', '.join(WORKOUT_COLUMNS)})
                VALUES({placeholders})
                ON CONFLICT(id) DO UPDATE SET {updates}, updated_at=CURRENT_TIMESTAMP
                """,
                workout_to_params(workout),
            )

    def delete_workout(self, workout_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM workouts WHERE id=?", (str(workout_id),))
            return cur.rowcount > 0

    def get_all_daily_stats(self) -> List[Dict[str, Any]]:
        with self._conn() as conn:
            rows = conn.rows("SELECT date, steps, distance, calories FROM daily_stats ORDER BY date")
            return [daily_from_row(r) for r in rows]

    def get_daily_stat(self, date: str) -> Optional[Dict[str, Any]]:
        with self._conn() as conn:
            rows = conn.rows(
                "SELECT date, steps, distance, calories FROM daily_stats WHERE date=?",
                (date,),
            )
            return daily_from_row(rows[0]) if rows else None

    def upsert_daily_stat(self, stat: Dict[str, Any]) -> None:
        """Insert the row, or raise each stored field to the incoming value; fields never decrease."""
        with self._conn() as conn:
            greatest = "GREATEST" if conn.postgres else "MAX"
            conn.execute(
                f"""
                INSERT INTO daily_stats(date, steps, distance, calories)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                  steps={greatest}(daily_stats.steps, excluded.steps),
                  distance={greatest}(daily_stats.distance, excluded.distance),
                  calories={greatest}(daily_stats.calories, excluded.calories),
                  updated_at=CURRENT_TIMESTAMP
                """,
                (
                    stat["date"],
                    int(stat.get("steps") or 0),
                    float(stat.get("distance") or 0),
                    int(stat.get("calories") or 0),
                ),
            )

    def delete_daily_stat(self, date: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM daily_stats WHERE date=?", (date,))
            return cur.rowcount > 0

    def append_sync_log(
        self,
        payload: Any,
        source: str = "health",
        user_agent: Optional[str] = None,
        received_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        entry = {
            "receivedAt": received_at or utc_now_iso(),
            "source": source,
            "userAgent": user_agent,
            "payload": payload,
        }
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO sync_logs(received_at, source, user_agent, payload_json) VALUES(?, ?, ?, ?)",
                (entry["receivedAt"], source, user_agent, json.dumps(payload)),
            )
            if self.sync_log_limit is not None:
                conn.execute(
                    """
                    DELETE FROM sync_logs
                    WHERE id NOT IN (SELECT id FROM sync_logs ORDER BY id DESC LIMIT ?)
                    """,
                    (self.sync_log_limit,),
                )
        return entry

    def get_sync_logs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        sql = "SELECT received_at, source, user_agent, payload_json FROM sync_logs ORDER BY id DESC"
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        with self._conn() as conn:
            rows = conn.rows(sql, params)
        return [
            {
                "receivedAt": r["received_at"],
                "source": r["source"],
                "userAgent": r["user_agent"],
                "payload": _loads(r["payload_json"], None),
            }
            for r in rows
        ]

    def get_last_sync_time(self) -> Optional[str]:
        with self._conn() as conn:
            return conn.scalar("SELECT value FROM store_meta WHERE key='last_sync'")

    def set_last_sync_time(self, value: str) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO store_meta(key, value) VALUES('last_sync', ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (value,),
            )
