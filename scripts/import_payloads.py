"""Replay saved webhook payloads into the configured store.

Accepts ``.json`` files (one payload each) and ``.jsonl`` files (one payload
per line), or directories containing them.
"""
from pathlib import Path
import argparse
import json
import logging
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from packages.logging_utils import setup_logging
from packages.store import get_store
from services.ingestion.webhook import ingest_health_payload


logger = logging.getLogger("fitness.import")


def iter_files(paths):
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            yield from sorted(p for p in path.iterdir() if p.suffix in (".json", ".jsonl"))
        elif path.exists():
            yield path
        else:
            logger.warning("missing path=%s", path)


def iter_payloads(path: Path):
    if path.suffix == ".jsonl":
        for lineno, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning("skip file=%s line=%d reason=%s", path.name, lineno, exc)
        return
    try:
        yield json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("skip file=%s reason=%s", path.name, exc)


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("paths", nargs="+", help="payload files or directories")
    parser.add_argument("--user-agent", default="import_payloads", help="user agent recorded in the sync log")
    args = parser.parse_args(argv)

    setup_logging()
    store = get_store()
    payloads = readings = workouts = days = 0
    for path in iter_files(args.paths):
        for payload in iter_payloads(path):
            result = ingest_health_payload(store, payload, user_agent=args.user_agent)
            payloads += 1
            readings += result.readings
            workouts += len(result.workout_ids)
            days += len(result.days)
    print(f"Imported payloads: {payloads}")
    print(f"Readings: {readings}  daily rows touched: {days}  workouts merged: {workouts}")


if __name__ == "__main__":
    main()
