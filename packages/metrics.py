"""In-process counters and timing sums, rendered as Prometheus-style text.

Series keys embed their labels (``http_requests_total{path="/api/health"}``)
so the registry stays a flat dict.
"""
import threading
from collections import defaultdict
from typing import Dict, List, Tuple


_lock = threading.Lock()
_counters: Dict[str, float] = defaultdict(int)
_timings: Dict[str, List[float]] = defaultdict(lambda: [0, 0.0])


def series(name: str, **labels) -> str:
    if not labels:
        return name
    body = ",".join(f'{key}="{value}"' for key, value in sorted(labels.items()))
    return f"{name}{{{body}}}"


def inc(name: str, value: int = 1, **labels) -> None:
    key = series(name, **labels)
    with _lock:
        _counters[key] += value


def observe(name: str, seconds: float, **labels) -> None:
    key = series(name, **labels)
    with _lock:
        timing = _timings[key]
        timing[0] += 1
        timing[1] += seconds


def snapshot() -> Tuple[Dict[str, float], Dict[str, Tuple[int, float]]]:
    with _lock:
        return dict(_counters), {key: (int(t[0]), t[1]) for key, t in _timings.items()}


def _with_suffix(key: str, suffix: str) -> str:
    name, brace, labels = key.partition("{")
    return f"{name}{suffix}{brace}{labels}"


def render() -> str:
    counters, timings = snapshot()
    lines = [f"{key} {value}" for key, value in sorted(counters.items())]
    for key, (count, total) in sorted(timings.items()):
        lines.append(f"{_with_suffix(key, '_count')} {count}")
        lines.append(f"{_with_suffix(key, '_sum')} {total:.6f}")
    return "\n".join(lines) + "\n"


def reset() -> None:
    with _lock:
        _counters.clear()
        _timings.clear()
