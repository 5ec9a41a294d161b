"""Candidate retrieval: hunk-scoped overlap search and global nearest-neighbour fallback.

Two modes over an injected ``ChunkStore``:

  hunk-scoped   chunks of the same file whose line range intersects the hunk
                (chunk.start_line <= hunk.end_line AND chunk.end_line >= hunk.start_line),
                capped at ``hunk_candidate_limit``
  fallback      top ``fallback_k`` chunks nearest to one query vector, no
                path or line constraint
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from diffscope.db.models import IndexedChunk
from diffscope.db.store import ChunkStore
from diffscope.diff.parser import DiffHunk
from diffscope.errors import BackendQueryError

logger = logging.getLogger(__name__)


@dataclass
class RetrieverConfig:
    """Configuration for candidate retrieval and aggregation.

    Attributes:
        hunk_candidate_limit: Max chunks fetched per hunk-scoped query.
        fallback_k: Nearest neighbours fetched by the fallback query.
        min_hunk_matches: Fallback runs when all hunk-scoped queries together
            produce fewer scored matches than this.
        max_results: Max entries in the final ContextBundle.
        max_concurrency: Max hunk-scoped queries in flight at once.
        timeout_seconds: Deadline for one whole retrieval (None = no deadline).
    """

    hunk_candidate_limit: int = 200
    fallback_k: int = 50
    min_hunk_matches: int = 5
    max_results: int = 10
    max_concurrency: int = 8
    timeout_seconds: float | None = 60.0


def overlaps(chunk_start: int, chunk_end: int, hunk_start: int, hunk_end: int) -> bool:
    """Return True if [chunk_start, chunk_end] intersects [hunk_start, hunk_end]."""
    return chunk_start <= hunk_end and chunk_end >= hunk_start


class CandidateRetriever:
    """Fetch candidate chunks from a ``ChunkStore``.

    Args:
        store: Vector + attribute store to query.
        config: Retrieval limits.
    """

    def __init__(self, store: ChunkStore, config: RetrieverConfig | None = None) -> None:
        self._store = store
        self._config = config or RetrieverConfig()

    async def hunk_candidates(self, hunk: DiffHunk) -> list[IndexedChunk]:
        """Return chunks of ``hunk.filepath`` overlapping the hunk's line range.

        The overlap condition is re-checked on whatever the store returns.

        Raises:
            BackendQueryError: If the store query fails.
        """
        filepath = hunk.filepath.lstrip("/")
        try:
            chunks = await self._store.search_overlapping(
                filepath,
                hunk.start_line,
                hunk.end_line,
                self._config.hunk_candidate_limit,
            )
        except BackendQueryError:
            raise
        except Exception as exc:
            raise BackendQueryError(
                f"Hunk query for {filepath}:{hunk.start_line}-{hunk.end_line} failed: {exc}"
            ) from exc

        kept = [
            c
            for c in chunks
            if c.filepath == filepath
            and overlaps(c.start_line, c.end_line, hunk.start_line, hunk.end_line)
        ]
        if len(kept) != len(chunks):
            logger.debug(
                "Dropped %d non-overlapping candidates for %s:%d-%d",
                len(chunks) - len(kept), filepath, hunk.start_line, hunk.end_line,
            )
        return kept[: self._config.hunk_candidate_limit]

    async def fallback_candidates(self, vector: list[float]) -> list[IndexedChunk]:
        """Return the ``fallback_k`` nearest chunks to *vector* across the index.

        Raises:
            BackendQueryError: If the store query fails.
        """
        try:
            chunks = await self._store.search_nearest(vector, self._config.fallback_k)
        except BackendQueryError:
            raise
        except Exception as exc:
            raise BackendQueryError(f"Fallback nearest-neighbour query failed: {exc}") from exc
        return chunks[: self._config.fallback_k]
