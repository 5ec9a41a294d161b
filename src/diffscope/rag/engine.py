"""Diff-aware context search: diff hunks + description → ranked ContextBundle.

Pipeline for one request:
  1. Embed the composite query text once (QueryEmbedder → vector set).
  2. For every hunk, fetch overlapping chunks and score them against every
     query vector. Hunk queries run concurrently, at most
     ``max_concurrency`` at a time; a failed hunk query is logged and skipped.
  3. If all hunks together produced fewer than ``min_hunk_matches`` matches,
     run one global nearest-neighbour query with the first query vector and
     merge its matches in. A failed fallback query is fatal.
  4. Sort, deduplicate by location and truncate to ``max_results``.

The whole request runs under an optional deadline. On expiry every in-flight
query is cancelled, partial matches are discarded and RetrievalTimeoutError
is raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from diffscope.db.store import ChunkStore
from diffscope.diff.parser import DiffHunk, FileDiff
from diffscope.errors import BackendQueryError, EmbeddingError, RetrievalTimeoutError
from diffscope.rag.aggregator import ContextBundle, aggregate
from diffscope.rag.embedder import QueryEmbedder
from diffscope.rag.retriever import CandidateRetriever, RetrieverConfig
from diffscope.rag.scoring import ScoredMatch, score_candidates

logger = logging.getLogger(__name__)

_USE_CONFIG = object()


def build_query_text(description: str, diff_text: str) -> str:
    """Composite query text embedded once per request: description, newline, raw diff."""
    return f"{description}\n{diff_text}"


class ContextEngine:
    """Retrieval engine with injected store and embedder.

    Args:
        store: Vector + attribute store (shared, read-only).
        embedder: Query embedder.
        config: Retrieval limits, concurrency cap and default deadline.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder: QueryEmbedder,
        config: RetrieverConfig | None = None,
    ) -> None:
        self._config = config or RetrieverConfig()
        self._embedder = embedder
        self._retriever = CandidateRetriever(store, self._config)

    @property
    def config(self) -> RetrieverConfig:
        return self._config

    async def search_context(
        self,
        query_text: str,
        parsed_diff: Sequence[FileDiff] | None = None,
        timeout: float | None | object = _USE_CONFIG,
    ) -> ContextBundle:
        """Return the ranked, deduplicated context for *query_text*.

        Args:
            query_text: Composite query (see build_query_text()).
            parsed_diff: Output of extract_hunks(). None or empty → fallback only.
            timeout: Deadline in seconds; defaults to ``config.timeout_seconds``.
                None disables the deadline.

        Raises:
            EmbeddingError: The query could not be embedded.
            BackendQueryError: The fallback query failed.
            RetrievalTimeoutError: The deadline expired.
        """
        limit = self._config.timeout_seconds if timeout is _USE_CONFIG else timeout
        deadline = asyncio.timeout(limit)
        try:
            async with deadline:
                return await self._search(query_text, parsed_diff or [])
        except TimeoutError as exc:
            if deadline.expired():
                raise RetrievalTimeoutError(
                    f"Context retrieval exceeded its {limit}s deadline."
                ) from exc
            raise

    def search_context_sync(
        self,
        query_text: str,
        parsed_diff: Sequence[FileDiff] | None = None,
        timeout: float | None | object = _USE_CONFIG,
    ) -> ContextBundle:
        """Blocking wrapper around search_context() for synchronous callers (CLI)."""
        return asyncio.run(self.search_context(query_text, parsed_diff, timeout))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _search(self, query_text: str, parsed_diff: Sequence[FileDiff]) -> ContextBundle:
        vectors = await self._embedder.embed(query_text)
        if not vectors:
            raise EmbeddingError("Embedder returned an empty vector set.")

        hunks = [hunk for file_diff in parsed_diff for hunk in file_diff.hunks]
        matches: list[ScoredMatch] = []

        if hunks:
            semaphore = asyncio.Semaphore(self._config.max_concurrency)
            # Each task returns its own list; merged only after all finish.
            per_hunk = await asyncio.gather(
                *(self._match_hunk(hunk, vectors, semaphore) for hunk in hunks)
            )
            for hunk_matches in per_hunk:
                matches.extend(hunk_matches)
            logger.info(
                "Hunk-scoped retrieval: %d matches from %d hunks", len(matches), len(hunks)
            )

        if len(matches) < self._config.min_hunk_matches:
            logger.info(
                "Fewer than %d hunk matches (%d); running global fallback",
                self._config.min_hunk_matches, len(matches),
            )
            first = vectors[0]
            candidates = await self._retriever.fallback_candidates(first)
            matches.extend(score_candidates([first], candidates))

        bundle = aggregate(matches, limit=self._config.max_results)
        logger.info("Context bundle: %d entries", len(bundle))
        return bundle

    async def _match_hunk(
        self,
        hunk: DiffHunk,
        vectors: list[list[float]],
        semaphore: asyncio.Semaphore,
    ) -> list[ScoredMatch]:
        async with semaphore:
            try:
                candidates = await self._retriever.hunk_candidates(hunk)
            except BackendQueryError as exc:
                logger.warning(
                    "Skipping hunk %s:%d-%d: %s",
                    hunk.filepath, hunk.start_line, hunk.end_line, exc,
                )
                return []
        logger.debug(
            "%s:%d-%d → %d candidates",
            hunk.filepath, hunk.start_line, hunk.end_line, len(candidates),
        )
        return score_candidates(vectors, candidates)
