from __future__ import annotations

"""Schema bootstrap for the MindGraph map database."""

import sqlite3
from typing import Optional

# Increment whenever schema changes (use migrations when >1)
SCHEMA_VERSION = 1

# -- DDL statements ---------------------------------------------------------
# Executed in order during bootstrap(). Safe to call repeatedly.
SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS schema_meta (
        key TEXT PRIMARY KEY,
        value TEXT
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS maps (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        title TEXT,
        map_data JSON NOT NULL,
        revision INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_maps_owner ON maps(owner_id, updated_at);",
    """
    CREATE TABLE IF NOT EXISTS memory_outbox (
        point_id TEXT PRIMARY KEY,
        collection TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        map_id TEXT NOT NULL,
        node_id TEXT,
        concept TEXT NOT NULL,
        text TEXT NOT NULL,
        attempts INTEGER NOT NULL DEFAULT 1,
        last_error TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    """,
]


def bootstrap(conn: sqlite3.Connection) -> None:
    """Create tables if missing and stamp schema version.

    Safe to call more than once.
    """
    cur = conn.cursor()
    for stmt in SCHEMA_STATEMENTS:
        cur.executescript(stmt)
    cur.execute(
        "INSERT OR REPLACE INTO schema_meta(key, value) VALUES('version', ?)",
        (str(SCHEMA_VERSION),),
    )
    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> Optional[int]:
    """Return current schema version (int) or None if unreadable."""
    cur = conn.cursor()
    try:
        cur.execute("SELECT value FROM schema_meta WHERE key='version'")
        row = cur.fetchone()
        if row and row[0] is not None:
            return int(row[0])
    except sqlite3.Error:
        return None
    return None
