"""Chunk index database layer."""

from diffscope.db.connection import Database
from diffscope.db.migrations import MIGRATIONS, run_migrations
from diffscope.db.models import IndexedChunk
from diffscope.db.schema import initialize
from diffscope.db.store import ChunkStore, IndexStats, SqliteVecStore
from diffscope.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "ChunkStore",
    "Database",
    "IndexStats",
    "IndexedChunk",
    "MIGRATIONS",
    "SqliteVecStore",
    "ensure_vec_table",
    "initialize",
    "model_to_slug",
    "run_migrations",
    "vec_table_name",
]
