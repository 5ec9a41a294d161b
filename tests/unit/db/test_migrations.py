"""Tests for the chunk index migration runner."""

from __future__ import annotations

import sqlite3

import pytest

from diffscope.db.connection import Database
from diffscope.db.migrations import CURRENT_VERSION, MIGRATIONS, run_migrations, schema_version
from diffscope.db.schema import initialize


def _conn(tmp_path) -> sqlite3.Connection:
    return Database(tmp_path / ".diffscope.db").connect()


def _tables(conn) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {r[0] for r in rows}


def test_schema_version_zero_before_migrations(tmp_path):
    conn = _conn(tmp_path)
    assert schema_version(conn) == 0
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _conn(tmp_path)
    run_migrations(conn)
    assert schema_version(conn) == CURRENT_VERSION == MIGRATIONS[-1][0]
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


def test_run_migrations_creates_code_chunks(tmp_path):
    conn = _conn(tmp_path)
    run_migrations(conn)
    cols = {r[1] for r in conn.execute("PRAGMA table_info(code_chunks)").fetchall()}
    assert {
        "id", "filepath", "function_name", "start_line", "end_line", "content", "importance",
    } <= cols
    conn.close()


def test_run_migrations_does_not_create_vec_tables(tmp_path):
    conn = _conn(tmp_path)
    run_migrations(conn)
    assert not any(t.startswith("vec_chunks_") for t in _tables(conn))
    conn.close()


def test_code_chunks_rejects_inverted_range(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO code_chunks (id, filepath, start_line, end_line, content) "
            "VALUES ('x', 'a.py', 10, 5, '')"
        )


def test_code_chunks_importance_nullable(tmp_db):
    tmp_db.execute(
        "INSERT INTO code_chunks (id, filepath, start_line, end_line, content) "
        "VALUES ('x', 'a.py', 1, 5, 'body')"
    )
    row = tmp_db.execute("SELECT importance FROM code_chunks WHERE id='x'").fetchone()
    assert row["importance"] is None


def test_initialize_delegates_to_run_migrations(tmp_path):
    conn = _conn(tmp_path)
    initialize(conn)
    assert "code_chunks" in _tables(conn)
    assert schema_version(conn) == CURRENT_VERSION
    conn.close()
