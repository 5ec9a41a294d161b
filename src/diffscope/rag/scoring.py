"""Similarity scoring: weighted cosine relevance of a chunk to a query vector.

score = cosine(query_vector, chunk.embedding) * chunk.importance

A candidate scored against an N-vector query set yields N ScoredMatch entries;
the aggregator later keeps the best one per location.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from diffscope.db.models import IndexedChunk


@dataclass
class ScoredMatch:
    """One (query vector, chunk) pairing and its weighted score.

    Attributes:
        filepath: Path of the chunk's file, as stored in the index.
        start_line: First line of the chunk (1-based, inclusive).
        end_line: Last line of the chunk (1-based, inclusive).
        content: Stored chunk content.
        importance: Chunk importance weight (1.0 when the index has none).
        score: ``cosine * importance``.
        function_name: Enclosing function, if the indexer recorded one.
    """

    filepath: str
    start_line: int
    end_line: int
    content: str
    importance: float
    score: float
    function_name: str | None = None

    @property
    def key(self) -> str:
        """Location key used for deduplication."""
        return f"{self.filepath}:{self.start_line}-{self.end_line}"


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of *a* and *b*; 0.0 if either norm is zero or lengths differ."""
    if len(a) != len(b):
        return 0.0
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / (norm_a * norm_b)


def score_chunk(query_vector: Sequence[float], chunk: IndexedChunk) -> ScoredMatch:
    """Score a single chunk against a single query vector."""
    return ScoredMatch(
        filepath=chunk.filepath,
        function_name=chunk.function_name,
        start_line=chunk.start_line,
        end_line=chunk.end_line,
        content=chunk.content,
        importance=chunk.importance,
        score=cosine(query_vector, chunk.embedding) * chunk.importance,
    )


def score_candidates(
    query_vectors: Sequence[Sequence[float]],
    candidates: Sequence[IndexedChunk],
) -> list[ScoredMatch]:
    """Score every candidate against every query vector.

    Candidates whose embedding is missing, empty, or of a different
    dimensionality than the query vector are skipped.
    """
    matches: list[ScoredMatch] = []
    for chunk in candidates:
        if not chunk.embedding:
            continue
        for qv in query_vectors:
            if len(qv) != len(chunk.embedding):
                continue
            matches.append(score_chunk(qv, chunk))
    return matches
