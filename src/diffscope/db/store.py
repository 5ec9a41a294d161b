"""Vector + attribute store for indexed code chunks.

``ChunkStore`` is the boundary the retrieval core consumes. ``SqliteVecStore``
implements it over the sqlite-vec index written by the indexing pipeline:
attributes live in ``code_chunks``, embeddings in ``vec_chunks_<model slug>``
keyed by ``code_chunks.rowid``. The store never writes.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from diffscope.db.connection import Database
from diffscope.db.models import IndexedChunk
from diffscope.db.vectors import (
    list_vec_tables,
    model_to_slug,
    vec_table_exists,
    vec_table_name,
)
from diffscope.errors import BackendQueryError

_CHUNK_COLUMNS = (
    "rowid, id, filepath, function_name, start_line, end_line, content, importance"
)


@runtime_checkable
class ChunkStore(Protocol):
    """Read-only vector + attribute store consumed by the retriever.

    Implementations raise ``BackendQueryError`` on any backend failure.
    """

    async def search_overlapping(
        self, filepath: str, start_line: int, end_line: int, limit: int
    ) -> list[IndexedChunk]:
        """Return up to *limit* chunks of *filepath* whose range overlaps [start_line, end_line]."""
        ...

    async def search_nearest(self, vector: list[float], k: int) -> list[IndexedChunk]:
        """Return the *k* chunks closest to *vector* across the whole index."""
        ...


@dataclass
class IndexStats:
    chunks: int = 0
    files: int = 0
    vec_tables: list[str] = field(default_factory=list)
    embedded: int | None = None  # rows in the configured model's vec table


class SqliteVecStore:
    """``ChunkStore`` over a sqlite-vec database.

    Every query opens its own read-only connection inside a worker thread, so
    concurrent hunk queries never share a sqlite3 connection.

    Args:
        db_path: Path to the index database.
        embedding_model: LiteLLM embedding model the index was built with;
            selects the vec table.
    """

    def __init__(self, db_path: Path | str, embedding_model: str) -> None:
        self._db = Database(db_path)
        self._vec_table = vec_table_name(model_to_slug(embedding_model))
        self._embedding_model = embedding_model

    @property
    def vec_table(self) -> str:
        return self._vec_table

    async def search_overlapping(
        self, filepath: str, start_line: int, end_line: int, limit: int
    ) -> list[IndexedChunk]:
        return await asyncio.to_thread(
            self._run, self._search_overlapping, filepath, start_line, end_line, limit
        )

    async def search_nearest(self, vector: list[float], k: int) -> list[IndexedChunk]:
        return await asyncio.to_thread(self._run, self._search_nearest, vector, k)

    def index_stats(self) -> IndexStats:
        """Return chunk/file counts and vec tables (used by ``diffscope status``)."""
        return self._run(self._index_stats, require_vec_table=False)

    # ------------------------------------------------------------------
    # Queries (run in worker threads)
    # ------------------------------------------------------------------

    def _search_overlapping(
        self,
        conn: sqlite3.Connection,
        filepath: str,
        start_line: int,
        end_line: int,
        limit: int,
    ) -> list[IndexedChunk]:
        # Interval intersection: both bounds must hold.
        rows = conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM code_chunks
            WHERE filepath = ? AND start_line <= ? AND end_line >= ?
            ORDER BY start_line, end_line
            LIMIT ?
            """,
            (filepath, end_line, start_line, limit),
        ).fetchall()
        return [self._hydrate(conn, row) for row in rows]

    def _search_nearest(
        self, conn: sqlite3.Connection, vector: list[float], k: int
    ) -> list[IndexedChunk]:
        vec_rows = conn.execute(
            f"SELECT rowid, distance FROM {self._vec_table} "
            "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
            (json.dumps(vector), k),
        ).fetchall()

        results: list[IndexedChunk] = []
        for vec_row in vec_rows:
            row = conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM code_chunks WHERE rowid = ?",
                (vec_row["rowid"],),
            ).fetchone()
            if row is not None:
                results.append(self._hydrate(conn, row))
        return results

    def _index_stats(self, conn: sqlite3.Connection) -> IndexStats:
        chunks, files = conn.execute(
            "SELECT COUNT(*), COUNT(DISTINCT filepath) FROM code_chunks"
        ).fetchone()
        embedded = None
        if vec_table_exists(conn, self._vec_table):
            embedded = conn.execute(f"SELECT COUNT(*) FROM {self._vec_table}").fetchone()[0]
        return IndexStats(
            chunks=chunks,
            files=files,
            vec_tables=list_vec_tables(conn),
            embedded=embedded,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, query, *args, require_vec_table: bool = True):
        """Open a read-only connection, run *query*, and map failures to BackendQueryError."""
        try:
            conn = self._db.connect(read_only=True)
        except sqlite3.Error as exc:
            raise BackendQueryError(
                f"Cannot open index database '{self._db.db_path}': {exc}"
            ) from exc
        try:
            if require_vec_table and not vec_table_exists(conn, self._vec_table):
                raise BackendQueryError(
                    f"No embeddings found for model '{self._embedding_model}' "
                    f"(missing table {self._vec_table}). Index the repository first."
                )
            return query(conn, *args)
        except sqlite3.Error as exc:
            raise BackendQueryError(f"Index query failed: {exc}") from exc
        finally:
            conn.close()

    def _hydrate(self, conn: sqlite3.Connection, row: sqlite3.Row) -> IndexedChunk:
        vec_row = conn.execute(
            f"SELECT vec_to_json(embedding) AS embedding FROM {self._vec_table} WHERE rowid = ?",
            (row["rowid"],),
        ).fetchone()
        embedding = json.loads(vec_row["embedding"]) if vec_row is not None else []
        importance = row["importance"]
        return IndexedChunk(
            id=row["id"],
            filepath=row["filepath"],
            function_name=row["function_name"],
            start_line=row["start_line"],
            end_line=row["end_line"],
            content=row["content"],
            embedding=embedding,
            importance=1.0 if importance is None else float(importance),
        )
