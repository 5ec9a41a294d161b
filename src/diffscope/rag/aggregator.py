"""Result aggregation: merge, rank, deduplicate and truncate scored matches."""

from __future__ import annotations

from typing import Iterable

from diffscope.rag.scoring import ScoredMatch

MAX_RESULTS = 10

# Final ranked, deduplicated snippets handed to the reviewer.
ContextBundle = list[ScoredMatch]


def aggregate(matches: Iterable[ScoredMatch], limit: int = MAX_RESULTS) -> ContextBundle:
    """Return at most *limit* unique matches, best score first.

    Sorting precedes deduplication, so the entry kept for each
    ``filepath:start-end`` key is that location's highest-scoring occurrence.
    An empty input yields an empty bundle.
    """
    ranked = sorted(matches, key=lambda m: m.score, reverse=True)

    seen: set[str] = set()
    bundle: ContextBundle = []
    for match in ranked:
        if len(bundle) >= limit:
            break
        if match.key in seen:
            continue
        seen.add(match.key)
        bundle.append(match)
    return bundle
