"""
Database connection, transactions and initialization.
"""
from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from matchday.roster import is_canonical, normalize_roster, serialize_roster

from .schema import all_schema_sql

logger = logging.getLogger(__name__)

# Seconds a writer waits for the database lock before failing
BUSY_TIMEOUT_SECONDS = 30.0


# Default DB path (project root / data / matchday.db), overridable with MATCHDAY_DB_PATH
def _default_db_path() -> Path:
    env_path = os.environ.get("MATCHDAY_DB_PATH", "").strip()
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parent.parent.parent / "data" / "matchday.db"


_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using default."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return _default_db_path()


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection in autocommit mode; group writes with transaction().
    Use as context manager or ensure close() is called.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    All-or-nothing block. BEGIN IMMEDIATE takes the write lock before the first read, so
    state re-read inside the block cannot change until commit. Nested use joins the outer
    transaction.
    """
    if conn.in_transaction:
        yield conn
        return
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def upgrade_stored_rosters(conn: sqlite3.Connection) -> int:
    """Rewrite every non-canonical roster in the versioned format. Returns rows changed."""
    changed = 0
    with transaction(conn):
        rows = conn.execute("SELECT id, format, roster FROM matches").fetchall()
        for row in rows:
            if is_canonical(row["roster"]):
                continue
            slots = normalize_roster(row["roster"], row["format"])
            conn.execute(
                "UPDATE matches SET roster = ?, roster_revision = roster_revision + 1 WHERE id = ?",
                (serialize_roster(slots), row["id"]),
            )
            changed += 1
    if changed:
        logger.info("Upgraded %d stored rosters to the versioned format", changed)
    return changed


def _run_phase_roster_revision(conn: sqlite3.Connection) -> None:
    """Add roster_revision to matches for databases created before it existed."""
    cur = conn.execute("PRAGMA table_info(matches)")
    cols = [row[1] for row in cur.fetchall()]
    if "roster_revision" not in cols:
        conn.execute("ALTER TABLE matches ADD COLUMN roster_revision INTEGER NOT NULL DEFAULT 0")


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist, then run idempotent migrations."""
    path = Path(db_path) if db_path else get_db_path()
    conn = get_connection(path)
    try:
        conn.executescript(all_schema_sql())
        _run_phase_roster_revision(conn)
        upgrade_stored_rosters(conn)
    finally:
        conn.close()
