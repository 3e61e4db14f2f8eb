"""Thin connection layer shared by the relational store and the scripts.

SQL is written once with ``?`` placeholders in the SQLite dialect; Postgres
connections rewrite placeholders on the way out.
"""
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import packages.config as config

try:  # Optional dependency for Postgres
    import psycopg2
except ImportError:  # pragma: no cover - optional in SQLite-only envs
    psycopg2 = None


DB_ERRORS: tuple = (sqlite3.Error,) + ((psycopg2.Error,) if psycopg2 is not None else ())
SCHEMA_DIR = Path(__file__).resolve().parents[1] / "database" / "schemas"


def is_postgres(url: Optional[str] = None) -> bool:
    url = config.DB_URL if url is None else url
    return bool(url) and url.startswith("postgres")


def schema_path(postgres: bool) -> Path:
    return SCHEMA_DIR / ("schema_pg.sql" if postgres else "schema.sql")


def statements(script: str) -> List[str]:
    """Split a schema script into single statements, dropping comment lines."""
    out: List[str] = []
    pending: List[str] = []
    for line in script.splitlines():
        text = line.strip()
        if not text or text.startswith("--"):
            continue
        pending.append(line)
        if text.endswith(";"):
            out.append("\n".join(pending).strip().rstrip(";"))
            pending = []
    if pending:
        out.append("\n".join(pending).strip().rstrip(";"))
    return out


class Connection:
    """One unit of work: commits on clean exit, rolls back on error, always closes."""

    def __init__(self, raw, postgres: bool):
        self.raw = raw
        self.postgres = postgres

    def execute(self, sql: str, params: Sequence[Any] = ()):
        if self.postgres:
            sql = sql.replace("?", "%s")
        cur = self.raw.cursor()
        cur.execute(sql, tuple(params))
        return cur

    def rows(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        cur = self.execute(sql, params)
        cols = [c[0] for c in cur.description]
        return [dict(zip(cols, row)) for row in cur.fetchall()]

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        row = self.execute(sql, params).fetchone()
        return row[0] if row else None

    def apply_schema(self) -> Path:
        path = schema_path(self.postgres)
        script = path.read_text()
        if self.postgres:
            for stmt in statements(script):
                self.raw.cursor().execute(stmt)
        else:
            self.raw.executescript(script)
        return path

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type:
                self.raw.rollback()
            else:
                self.raw.commit()
        finally:
            self.raw.close()


def connect(url: Optional[str] = None, path: Optional[Path] = None) -> Connection:
    url = config.DB_URL if url is None else url
    if is_postgres(url):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is required for Postgres. Install the 'postgres' extra.")
        return Connection(psycopg2.connect(url), postgres=True)

    path = Path(config.DB_PATH if path is None else path)
    path.parent.mkdir(parents=True, exist_ok=True)
    raw = sqlite3.connect(path, timeout=5.0)
    try:
        raw.execute("PRAGMA journal_mode=WAL")
    except sqlite3.OperationalError:
        pass  # read-only media or network filesystems
    return Connection(raw, postgres=False)
