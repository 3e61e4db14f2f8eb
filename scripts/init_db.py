"""Create the relational store schema (SQLite file or Postgres via FITNESS_DB_URL)."""
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from packages import config, db


def main() -> None:
    target = "postgres" if db.is_postgres() else str(config.DB_PATH)
    with db.connect() as conn:
        schema = conn.apply_schema()
    print(f"Initialized {schema.name} ({target})")


if __name__ == "__main__":
    main()
