"""Response cache for read endpoints whose result only changes on ingest.

Entries carry the store's ``lastSync`` stamp; a newer stamp or the TTL
running out forces a recompute. Write endpoints clear everything.
"""
import threading
import time
from typing import Any, Callable, Dict, NamedTuple, Optional


class _Entry(NamedTuple):
    expires_at: float
    version: Optional[str]
    value: Any


_lock = threading.Lock()
_entries: Dict[str, _Entry] = {}


def get_or_set(key: str, ttl_seconds: int, version: Optional[str], compute: Callable[[], Any]) -> Any:
    with _lock:
        entry = _entries.get(key)
    if entry is not None and entry.version == version and entry.expires_at > time.monotonic():
        return entry.value
    value = compute()
    if ttl_seconds > 0:
        with _lock:
            _entries[key] = _Entry(time.monotonic() + ttl_seconds, version, value)
    return value


def clear() -> None:
    with _lock:
        _entries.clear()
