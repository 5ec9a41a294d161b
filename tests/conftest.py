"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Use litellm's bundled model cost map; its network fetch at import time
# deadlocks under pytest when offline.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest

from diffscope.db.connection import Database
from diffscope.db.schema import initialize


@pytest.fixture
def tmp_db_path(tmp_path):
    return tmp_path / ".diffscope.db"


@pytest.fixture
def tmp_db(tmp_db_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_db_path)
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()
