"""Forward-only migration runner for the chunk index schema.

diffscope only reads the index. The runner defines the `code_chunks` layout
that the indexing pipeline writes and the test fixtures build, and that
SqliteVecStore queries. Vec tables (vec_chunks_*) are NOT migration-managed;
use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS code_chunks (
    id              TEXT NOT NULL UNIQUE,
    filepath        TEXT NOT NULL,
    function_name   TEXT,
    start_line      INTEGER NOT NULL,
    end_line        INTEGER NOT NULL,
    content         TEXT NOT NULL,
    importance      REAL,
    indexed_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    CHECK (start_line <= end_line)
);

CREATE INDEX IF NOT EXISTS idx_code_chunks_location
    ON code_chunks (filepath, start_line, end_line);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]

CURRENT_VERSION = MIGRATIONS[-1][0]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    current = schema_version(conn)

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()


def schema_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version, 0 for an uninitialised database."""
    exists = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    ).fetchone()
    if exists is None:
        return 0
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0
