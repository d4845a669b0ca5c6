"""
SQLite event store.
Schema: caffeine_event (timestamps stored as unix seconds).
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from tracker import config
from tracker.core.models import ConsumptionEvent

log = logging.getLogger("caffeine.db")

_local = threading.local()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS caffeine_event (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp   INTEGER NOT NULL,
    description TEXT    NOT NULL DEFAULT '',
    amount      REAL    NOT NULL CHECK(amount >= 0),
    cost        INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_caffeine_ts ON caffeine_event(timestamp);
"""


def get_connection() -> sqlite3.Connection:
    """Thread-local SQLite connection with WAL mode, reopened if DB_PATH changes."""
    path = str(config.DB_PATH)
    if getattr(_local, "path", None) != path or _local.conn is None:
        config.DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        _local.conn = conn
        _local.path = path
    return _local.conn


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


def init_db():
    """Create tables if they don't exist."""
    with db_cursor() as cur:
        cur.executescript(SCHEMA_SQL)
    log.info("[caffeine-db] Database initialized at %s", config.DB_PATH)


def _to_unix(t: datetime) -> int:
    return int(t.timestamp())


def _row_to_event(row: sqlite3.Row) -> ConsumptionEvent:
    return ConsumptionEvent(
        timestamp=datetime.fromtimestamp(row["timestamp"], tz=timezone.utc),
        description=row["description"],
        amount=row["amount"],
        cost=row["cost"],
    )


# --- CRUD helpers ---

def insert_event(event: ConsumptionEvent) -> int:
    with db_cursor() as cur:
        cur.execute(
            "INSERT INTO caffeine_event (timestamp, description, amount, cost) VALUES (?,?,?,?)",
            (_to_unix(event.timestamp), event.description, event.amount, event.cost),
        )
        return cur.lastrowid


def query_events(start: datetime, end: datetime) -> list[ConsumptionEvent]:
    """Events with start <= timestamp <= end, oldest first."""
    with db_cursor() as cur:
        cur.execute(
            "SELECT * FROM caffeine_event WHERE timestamp BETWEEN ? AND ? ORDER BY timestamp",
            (_to_unix(start), _to_unix(end)),
        )
        return [_row_to_event(r) for r in cur.fetchall()]


def query_event_rows(start: datetime, end: datetime) -> list[dict]:
    """Same range as query_events, raw rows including ids."""
    with db_cursor() as cur:
        cur.execute(
            "SELECT * FROM caffeine_event WHERE timestamp BETWEEN ? AND ? ORDER BY timestamp",
            (_to_unix(start), _to_unix(end)),
        )
        return [dict(r) for r in cur.fetchall()]


def _sum_column(column: str, start: datetime, end: datetime) -> int:
    start_s = max(0, _to_unix(start))
    with db_cursor() as cur:
        cur.execute(
            f"SELECT COALESCE(SUM({column}), 0) FROM caffeine_event WHERE timestamp BETWEEN ? AND ?",
            (start_s, _to_unix(end)),
        )
        return int(cur.fetchone()[0])


def get_total_intake(start: datetime, end: datetime) -> int:
    """Total mg consumed in [start, end]."""
    return _sum_column("amount", start, end)


def get_total_cost(start: datetime, end: datetime) -> int:
    """Total spent in cents in [start, end]."""
    return _sum_column("cost", start, end)


def get_latest_event() -> Optional[ConsumptionEvent]:
    with db_cursor() as cur:
        cur.execute("SELECT * FROM caffeine_event ORDER BY timestamp DESC LIMIT 1")
        row = cur.fetchone()
        return _row_to_event(row) if row else None


def delete_event(event_id: int) -> bool:
    with db_cursor() as cur:
        cur.execute("DELETE FROM caffeine_event WHERE id=?", (event_id,))
        return cur.rowcount > 0
