from pathlib import Path
import os

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - optional in some environments
    load_dotenv = None

ROOT = Path(__file__).resolve().parents[1]

if load_dotenv:
    load_dotenv(ROOT / ".env")


def _optional_int(key: str) -> int | None:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


RUN_MODE = os.getenv("RUN_MODE", "dev").lower()
API_HOST = os.getenv("FITNESS_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("FITNESS_API_PORT", "3000"))

# Persistence: "json" (document file), "memory", or "sql" (SQLite / Postgres).
STORE_BACKEND = os.getenv("FITNESS_STORE_BACKEND", "json").lower()
DB_URL = os.getenv("FITNESS_DB_URL")
DB_PATH = Path(os.getenv("FITNESS_DB_PATH", ROOT / "data" / "fitness.db"))
DATA_FILE = Path(os.getenv("FITNESS_DATA_FILE", ROOT / "data" / "health-data.json"))
SYNC_LOG_FILE = Path(os.getenv("FITNESS_SYNC_LOG_FILE", ROOT / "data" / "sync-logs.json"))

# None -> backend default (document stores keep 10, sql keeps all); 0 -> unbounded.
SYNC_LOG_RETENTION = _optional_int("FITNESS_SYNC_LOG_RETENTION")
DOCUMENT_SYNC_LOG_DEFAULT = 10

RECENT_DAYS = int(os.getenv("FITNESS_RECENT_DAYS", "7"))
STATS_CACHE_SECONDS = int(os.getenv("FITNESS_STATS_CACHE_SECONDS", "30"))
DEBUG_DEFAULT_LIMIT = int(os.getenv("FITNESS_DEBUG_DEFAULT_LIMIT", "10"))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("FITNESS_CORS_ORIGINS", "*").split(",")
    if origin.strip()
]


def _float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key) or default)
    except ValueError:
        return default


# Error reporting (Sentry) is off unless a DSN is configured.
SENTRY_DSN = os.getenv("FITNESS_SENTRY_DSN") or None
SENTRY_ENVIRONMENT = os.getenv("FITNESS_ENV", RUN_MODE)
SENTRY_RELEASE = os.getenv("FITNESS_RELEASE") or None
SENTRY_TRACES_SAMPLE_RATE = _float("FITNESS_SENTRY_TRACES_SAMPLE_RATE", 0.0)
