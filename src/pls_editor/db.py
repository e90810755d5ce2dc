"""SQLite connection and schema for the reference blob and settings stores."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from pls_editor.exceptions import CollaboratorError

SCHEMA_VERSION = "1.0"

# ---------------------------------------------------------------------------
# DDL statements
# ---------------------------------------------------------------------------

_DDL = """
-- Meta table
CREATE TABLE IF NOT EXISTS meta (
    key TEXT NOT NULL,
    value TEXT,
    UNIQUE (key)
);

-- Lexicon files; deleted files live under the 'deleted/' prefix
CREATE TABLE IF NOT EXISTS blobs (
    rowid INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    content TEXT NOT NULL,
    content_type TEXT NOT NULL DEFAULT 'application/xml',
    modified_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    UNIQUE (name)
);
CREATE INDEX IF NOT EXISTS blob_name_index ON blobs (name);

-- Production and staged settings documents
CREATE TABLE IF NOT EXISTS settings_documents (
    rowid INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    content TEXT NOT NULL,
    modified_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
    UNIQUE (name)
);

-- Copies of the production document taken before each change
CREATE TABLE IF NOT EXISTS settings_backups (
    rowid INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
);
CREATE INDEX IF NOT EXISTS settings_backup_created_index
    ON settings_backups (created_at);
"""


def connect(db_path: str | Path = ":memory:") -> sqlite3.Connection:
    """Open a database connection with store PRAGMA settings."""
    db_path_str = str(db_path)
    conn = sqlite3.connect(db_path_str)
    if db_path_str != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create all tables if they don't exist. Set schema version."""
    conn.executescript(_DDL)
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) "
        "VALUES ('created_at', strftime('%Y-%m-%dT%H:%M:%f', 'now'))",
    )
    conn.commit()


def check_schema_version(conn: sqlite3.Connection) -> None:
    """Verify the database schema version is compatible."""
    try:
        row = conn.execute(
            "SELECT value FROM meta WHERE key = 'schema_version'"
        ).fetchone()
    except sqlite3.OperationalError:
        # uninitialized database
        return
    if row is None:
        return
    version = row[0]
    if version != SCHEMA_VERSION:
        raise CollaboratorError(
            f"Incompatible schema version: {version} "
            f"(expected {SCHEMA_VERSION})"
        )


def open_db(db_path: str | Path = ":memory:") -> sqlite3.Connection:
    """Connect, check the schema version and create missing tables."""
    conn = connect(db_path)
    check_schema_version(conn)
    init_db(conn)
    return conn
