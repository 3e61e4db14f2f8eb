"""Store adapter: one interface over the document and relational backends.

Records cross this boundary as plain dicts using the API's field names
(``startTime``, ``heartRateAvg``, ``dailyStats`` ...). Every backend raises
``StoreUnavailable`` when its underlying file or database fails.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import packages.config as config
from packages.errors import StoreUnavailable


logger = logging.getLogger("fitness.store")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def empty_document() -> Dict[str, Any]:
    return {"workouts": [], "dailyStats": [], "lastSync": None}


def resolve_retention(default: Optional[int]) -> Optional[int]:
    """Sync-log cap for a backend: configured value, else the backend default; 0 means unbounded."""
    value = config.SYNC_LOG_RETENTION
    if value is None:
        return default
    if value <= 0:
        return None
    return value


class Store(ABC):
    sync_log_limit: Optional[int] = None

    @abstractmethod
    def get_all_workouts(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def upsert_workout(self, workout: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete_workout(self, workout_id: str) -> bool:
        ...

    @abstractmethod
    def get_all_daily_stats(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def get_daily_stat(self, date: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def upsert_daily_stat(self, stat: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete_daily_stat(self, date: str) -> bool:
        ...

    @abstractmethod
    def append_sync_log(
        self,
        payload: Any,
        source: str = "health",
        user_agent: Optional[str] = None,
        received_at: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    @abstractmethod
    def get_sync_logs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def get_last_sync_time(self) -> Optional[str]:
        ...

    @abstractmethod
    def set_last_sync_time(self, value: str) -> None:
        ...

    def snapshot(self) -> Dict[str, Any]:
        return {
            "workouts": self.get_all_workouts(),
            "dailyStats": self.get_all_daily_stats(),
            "lastSync": self.get_last_sync_time(),
        }


class MemoryStore(Store):
    """Document store held in process memory.

    Subclasses swap the four ``_load``/``_save`` hooks to persist the
    document elsewhere; every read-modify-write runs under one lock.
    """

    def __init__(self, sync_log_limit: Optional[int] = config.DOCUMENT_SYNC_LOG_DEFAULT):
        self.sync_log_limit = sync_log_limit
        self._lock = threading.RLock()
        self._doc = empty_document()
        self._logs: List[Dict[str, Any]] = []

    def _load(self) -> Dict[str, Any]:
        return self._doc

    def _save(self, doc: Dict[str, Any]) -> None:
        self._doc = doc

    def _load_logs(self) -> List[Dict[str, Any]]:
        return self._logs

    def _save_logs(self, logs: List[Dict[str, Any]]) -> None:
        self._logs = logs

    def get_all_workouts(self) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._load().get("workouts") or [])

    def upsert_workout(self, workout: Dict[str, Any]) -> None:
        with self._lock:
            doc = self._load()
            workouts = doc.setdefault("workouts", [])
            for i, existing in enumerate(workouts):
                if existing.get("id") == workout["id"]:
                    workouts[i] = copy.deepcopy(workout)
                    break
            else:
                workouts.append(copy.deepcopy(workout))
            self._save(doc)

    def delete_workout(self, workout_id: str) -> bool:
        with self._lock:
            doc = self._load()
            workouts = doc.get("workouts") or []
            kept = [w for w in workouts if str(w.get("id")) != str(workout_id)]
            if len(kept) == len(workouts):
                return False
            doc["workouts"] = kept
            self._save(doc)
            return True

    def get_all_daily_stats(self) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._load().get("dailyStats") or [])

    def get_daily_stat(self, date: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            for row in self._load().get("dailyStats") or []:
                if row.get("date") == date:
                    return dict(row)
            return None

    def upsert_daily_stat(self, stat: Dict[str, Any]) -> None:
        with self._lock:
            doc = self._load()
            rows = doc.setdefault("dailyStats", [])
            for i, existing in enumerate(rows):
                if existing.get("date") == stat["date"]:
                    rows[i] = dict(stat)
                    break
            else:
                rows.append(dict(stat))
            self._save(doc)

    def delete_daily_stat(self, date: str) -> bool:
        with self._lock:
            doc = self._load()
            rows = doc.get("dailyStats") or []
            kept = [d for d in rows if d.get("date") != date]
            if len(kept) == len(rows):
                return False
            doc["dailyStats"] = kept
            self._save(doc)
            return True

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
        with self._lock:
            logs = [entry] + list(self._load_logs())
            if self.sync_log_limit is not None:
                logs = logs[: self.sync_log_limit]
            self._save_logs(logs)
        return entry

    def get_sync_logs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            logs = copy.deepcopy(self._load_logs())
        return logs if limit is None else logs[:limit]

    def get_last_sync_time(self) -> Optional[str]:
        with self._lock:
            return self._load().get("lastSync")

    def set_last_sync_time(self, value: str) -> None:
        with self._lock:
            doc = self._load()
            doc["lastSync"] = value
            self._save(doc)


class JsonFileStore(MemoryStore):
    """Document store persisted as pretty-printed JSON files.

    The document is re-read on every operation so hand edits to the file are
    picked up without a restart.
    """

    def __init__(
        self,
        path: Path,
        sync_log_path: Optional[Path] = None,
        sync_log_limit: Optional[int] = config.DOCUMENT_SYNC_LOG_DEFAULT,
    ):
        super().__init__(sync_log_limit=sync_log_limit)
        self.path = Path(path)
        self.sync_log_path = Path(sync_log_path) if sync_log_path else self.path.with_name("sync-logs.json")

    def _write_json(self, path: Path, data: Any) -> None:
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            raise StoreUnavailable(f"Failed to write {path}: {exc}") from exc

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            doc = empty_document()
            self._write_json(self.path, doc)
            return doc
        try:
            doc = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreUnavailable(f"Failed to read {self.path}: {exc}") from exc
        if not isinstance(doc, dict):
            raise StoreUnavailable(f"Failed to read {self.path}: document is not an object")
        return doc

    def _save(self, doc: Dict[str, Any]) -> None:
        self._write_json(self.path, doc)

    def _load_logs(self) -> List[Dict[str, Any]]:
        if not self.sync_log_path.exists():
            return []
        try:
            logs = json.loads(self.sync_log_path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("sync_log_unreadable path=%s; starting a new log", self.sync_log_path)
            return []
        except OSError as exc:
            raise StoreUnavailable(f"Failed to read {self.sync_log_path}: {exc}") from exc
        return logs if isinstance(logs, list) else []

    def _save_logs(self, logs: List[Dict[str, Any]]) -> None:
        self._write_json(self.sync_log_path, logs)


_store: Optional[Store] = None
_store_lock = threading.Lock()


def build_store(backend: Optional[str] = None) -> Store:
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "memory":
        return MemoryStore(sync_log_limit=resolve_retention(config.DOCUMENT_SYNC_LOG_DEFAULT))
    if backend == "json":
        return JsonFileStore(
            config.DATA_FILE,
            config.SYNC_LOG_FILE,
            sync_log_limit=resolve_retention(config.DOCUMENT_SYNC_LOG_DEFAULT),
        )
    if backend == "sql":
        from packages.sql_store import SqlStore

        return SqlStore(sync_log_limit=resolve_retention(None))
    raise ValueError(f"Unknown store backend: {backend}")


def get_store() -> Store:
    global _store
    with _store_lock:
        if _store is None:
            _store = build_store()
            logger.info("store_ready backend=%s", type(_store).__name__)
        return _store


def reset_store() -> None:
    global _store
    with _store_lock:
        _store = None
