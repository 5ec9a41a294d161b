"""Index schema initialization for the indexing pipeline and test fixtures.

Retrieval opens the index read-only and never calls this.
"""

from __future__ import annotations

import sqlite3

from diffscope.db.migrations import run_migrations


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    run_migrations(conn)
