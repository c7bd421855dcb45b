"""
SQLite database setup and access layer.
Schema: injection_records, user_profile (single row).
Timestamps are stored as integer milliseconds since epoch.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Optional

from glp_tracker.config import DB_PATH, DEFAULT_SUBSTANCE_ID
from glp_tracker.core.pk_engine import DosingEvent, now_ms

log = logging.getLogger("glp.db")

_local = threading.local()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS injection_records (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp_ms  INTEGER NOT NULL,
    substance_id  TEXT    NOT NULL,
    dose_mg       REAL    NOT NULL CHECK(dose_mg > 0),
    site          TEXT
);

CREATE INDEX IF NOT EXISTS idx_injection_ts ON injection_records(timestamp_ms);

CREATE TABLE IF NOT EXISTS user_profile (
    id                      INTEGER PRIMARY KEY CHECK(id = 1),
    default_substance_id    TEXT    NOT NULL DEFAULT 'tirz',
    custom_interval_enabled INTEGER NOT NULL DEFAULT 0 CHECK(custom_interval_enabled IN (0, 1)),
    injection_interval_days REAL,
    half_day_dosing         INTEGER NOT NULL DEFAULT 0 CHECK(half_day_dosing IN (0, 1)),
    is_premium              INTEGER NOT NULL DEFAULT 0 CHECK(is_premium IN (0, 1)),
    premium_permanent       INTEGER NOT NULL DEFAULT 0 CHECK(premium_permanent IN (0, 1)),
    premium_until           INTEGER
);
"""

_PROFILE_BOOL_FIELDS = (
    "custom_interval_enabled",
    "half_day_dosing",
    "is_premium",
    "premium_permanent",
)

PROFILE_FIELDS = _PROFILE_BOOL_FIELDS + (
    "default_substance_id",
    "injection_interval_days",
    "premium_until",
)


def get_connection() -> sqlite3.Connection:
    """Thread-local SQLite connection with WAL mode; reopened if DB_PATH moves."""
    conn = getattr(_local, "conn", None)
    if conn is None or getattr(_local, "path", None) != DB_PATH:
        if conn is not None:
            conn.close()
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(DB_PATH), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        _local.conn = conn
        _local.path = DB_PATH
    return conn


def close_connection():
    conn = getattr(_local, "conn", None)
    if conn is not None:
        conn.close()
    _local.conn = None
    _local.path = None


@contextmanager
def db_cursor():
    """Yield a cursor, auto-commit on success, rollback on error."""
    conn = get_connection()
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _migrate_tables():
    """
    Bring older databases up to the current schema.
    Early versions had no injection site column.
    """
    conn = get_connection()
    cur = conn.cursor()

    cur.execute("SELECT sql FROM sqlite_master WHERE type='table' AND name='injection_records'")
    row = cur.fetchone()
    if row:
        create_sql = row[0] or ""
        if "site" not in create_sql:
            log.info("Migrating injection_records: adding site")
            cur.execute("ALTER TABLE injection_records ADD COLUMN site TEXT")
            conn.commit()
            log.info("injection_records migration complete")


def init_db():
    """Create tables if they don't exist, run migrations, seed the profile row."""
    _migrate_tables()
    with db_cursor() as cur:
        cur.executescript(SCHEMA_SQL)
        cur.execute(
            "INSERT OR IGNORE INTO user_profile (id, default_substance_id) VALUES (1, ?)",
            (DEFAULT_SUBSTANCE_ID,),
        )
    log.info("Database initialized at %s", DB_PATH)


# --- Injections ---

def insert_injection(substance_id: str, dose_mg: float,
                     timestamp_ms: Optional[int] = None,
                     site: Optional[str] = None) -> int:
    ts = timestamp_ms if timestamp_ms is not None else now_ms()
    with db_cursor() as cur:
        cur.execute(
            "INSERT INTO injection_records (timestamp_ms, substance_id, dose_mg, site) VALUES (?,?,?,?)",
            (ts, substance_id, dose_mg, site),
        )
        return cur.lastrowid


def get_injection(injection_id: int) -> Optional[dict]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM injection_records WHERE id=?", (injection_id,))
        row = cur.fetchone()
        return dict(row) if row else None


def update_injection(injection_id: int, timestamp_ms: Optional[int] = None,
                     dose_mg: Optional[float] = None,
                     site: Optional[str] = None) -> bool:
    """Corrective edit of date, dose or site. Only given fields change."""
    changes = {}
    if timestamp_ms is not None:
        changes["timestamp_ms"] = timestamp_ms
    if dose_mg is not None:
        changes["dose_mg"] = dose_mg
    if site is not None:
        changes["site"] = site
    if not changes:
        return get_injection(injection_id) is not None

    assignments = ", ".join(f"{col}=?" for col in changes)
    with db_cursor() as cur:
        cur.execute(
            f"UPDATE injection_records SET {assignments} WHERE id=?",
            (*changes.values(), injection_id),
        )
        return cur.rowcount > 0


def delete_injection(injection_id: int) -> bool:
    with db_cursor() as cur:
        cur.execute("DELETE FROM injection_records WHERE id=?", (injection_id,))
        return cur.rowcount > 0


def query_injections(start_ms: Optional[int] = None,
                     end_ms: Optional[int] = None) -> list[dict]:
    """Injections in [start_ms, end_ms], newest first. Open bounds when None."""
    sql = "SELECT * FROM injection_records"
    clauses, params = [], []
    if start_ms is not None:
        clauses.append("timestamp_ms >= ?")
        params.append(start_ms)
    if end_ms is not None:
        clauses.append("timestamp_ms <= ?")
        params.append(end_ms)
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY timestamp_ms DESC, id DESC"
    with db_cursor() as cur:
        cur.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]


def get_latest_injection() -> Optional[dict]:
    with db_cursor() as cur:
        cur.execute(
            "SELECT * FROM injection_records ORDER BY timestamp_ms DESC, id DESC LIMIT 1"
        )
        row = cur.fetchone()
        return dict(row) if row else None


def row_to_event(row: dict) -> DosingEvent:
    return DosingEvent(
        timestamp=int(row["timestamp_ms"]),
        substance_id=row["substance_id"],
        dose_mg=float(row["dose_mg"]),
        site=row.get("site"),
    )


def load_events(start_ms: Optional[int] = None,
                end_ms: Optional[int] = None) -> list[DosingEvent]:
    return [row_to_event(r) for r in query_injections(start_ms, end_ms)]


# --- Profile ---

def get_profile() -> dict:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM user_profile WHERE id=1")
        row = cur.fetchone()
    if not row:
        return {"default_substance_id": DEFAULT_SUBSTANCE_ID}
    profile = dict(row)
    profile.pop("id", None)
    for key in _PROFILE_BOOL_FIELDS:
        profile[key] = bool(profile[key])
    return profile


def update_profile(**fields) -> dict:
    """Update the given profile columns; unknown names raise ValueError."""
    unknown = set(fields) - set(PROFILE_FIELDS)
    if unknown:
        raise ValueError(f"Unknown profile fields: {sorted(unknown)}")
    if fields:
        values = {
            k: int(v) if k in _PROFILE_BOOL_FIELDS else v
            for k, v in fields.items()
        }
        assignments = ", ".join(f"{col}=?" for col in values)
        with db_cursor() as cur:
            cur.execute(
                f"UPDATE user_profile SET {assignments} WHERE id=1",
                tuple(values.values()),
            )
    return get_profile()
