"""Tests for ContextEngine.search_context (hunk-scoped search + fallback)."""

from __future__ import annotations

import asyncio
import math

import pytest

from index_helpers import TEST_MODEL, add_chunk, make_chunk
from diffscope.db.models import IndexedChunk
from diffscope.db.store import SqliteVecStore
from diffscope.diff.parser import DiffHunk, FileDiff, extract_hunks
from diffscope.errors import (
    BackendQueryError,
    ContextError,
    EmbeddingError,
    RetrievalTimeoutError,
)
from diffscope.rag.engine import ContextEngine, build_query_text
from diffscope.rag.retriever import RetrieverConfig, overlaps

_Q = [1.0, 0.0, 0.0]


# ------------------------------------------------------------------
# Test doubles
# ------------------------------------------------------------------


class FakeEmbedder:
    def __init__(self, vectors=None, error: Exception | None = None):
        self.vectors = vectors if vectors is not None else [_Q]
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[list[float]]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.vectors


class FakeStore:
    """In-memory ChunkStore with call counters, failure injection and latency."""

    def __init__(
        self,
        chunks: list[IndexedChunk] | None = None,
        nearest: list[IndexedChunk] | None = None,
        failing_files: set[str] | None = None,
        nearest_error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.chunks = chunks or []
        self.nearest = nearest if nearest is not None else list(self.chunks)
        self.failing_files = failing_files or set()
        self.nearest_error = nearest_error
        self.delay = delay
        self.overlap_calls = 0
        self.nearest_calls: list[tuple[list[float], int]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search_overlapping(self, filepath, start_line, end_line, limit):
        self.overlap_calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if filepath in self.failing_files:
                raise BackendQueryError(f"{filepath} unavailable")
            return [
                c for c in self.chunks
                if c.filepath == filepath
                and overlaps(c.start_line, c.end_line, start_line, end_line)
            ][:limit]
        finally:
            self.in_flight -= 1

    async def search_nearest(self, vector, k):
        self.nearest_calls.append((vector, k))
        if self.nearest_error:
            raise self.nearest_error
        return self.nearest[:k]


def _vec_at(cos: float) -> list[float]:
    """Unit vector whose cosine with _Q is *cos*."""
    return [cos, math.sqrt(1.0 - cos * cos), 0.0]


def _search(engine: ContextEngine, parsed=None, text="query", **kwargs):
    return asyncio.run(engine.search_context(text, parsed, **kwargs))


def _diff(filepath: str, *ranges: tuple[int, int]) -> list[FileDiff]:
    return [FileDiff(filepath, [DiffHunk(filepath, s, e) for s, e in ranges])]


# ------------------------------------------------------------------
# build_query_text
# ------------------------------------------------------------------


def test_build_query_text_description_then_diff():
    assert build_query_text("fix off-by-one", "@@ -1 +1 @@") == "fix off-by-one\n@@ -1 +1 @@"


# ------------------------------------------------------------------
# Mode selection
# ------------------------------------------------------------------


@pytest.mark.parametrize("parsed", [None, [], [FileDiff("img.png", [])]])
def test_no_hunks_runs_only_fallback(parsed):
    store = FakeStore(nearest=[make_chunk("z.py", 1, 3)])
    engine = ContextEngine(store, FakeEmbedder())
    bundle = _search(engine, parsed)
    assert store.overlap_calls == 0
    assert len(store.nearest_calls) == 1
    assert [m.filepath for m in bundle] == ["z.py"]


def test_few_hunk_matches_trigger_fallback_and_merge():
    hunk_chunks = [make_chunk("a.py", s, s + 1, embedding=_vec_at(0.5)) for s in (1, 3, 5, 7)]
    far = make_chunk("far.py", 1, 2, embedding=_vec_at(0.99))
    store = FakeStore(chunks=hunk_chunks, nearest=[far])
    engine = ContextEngine(store, FakeEmbedder())

    bundle = _search(engine, _diff("a.py", (1, 10)))

    assert store.overlap_calls == 1
    assert len(store.nearest_calls) == 1
    assert bundle[0].filepath == "far.py"
    assert len(bundle) == 5


def test_enough_hunk_matches_skip_fallback():
    hunk_chunks = [make_chunk("a.py", s, s) for s in range(1, 6)]
    store = FakeStore(chunks=hunk_chunks)
    engine = ContextEngine(store, FakeEmbedder())
    bundle = _search(engine, _diff("a.py", (1, 10)))
    assert store.nearest_calls == []
    assert len(bundle) == 5


def test_match_count_includes_every_query_vector():
    # 3 chunks x 2 vectors = 6 matches, enough to skip fallback.
    hunk_chunks = [make_chunk("a.py", s, s) for s in (1, 2, 3)]
    store = FakeStore(chunks=hunk_chunks)
    engine = ContextEngine(store, FakeEmbedder(vectors=[_Q, [0.0, 1.0, 0.0]]))
    bundle = _search(engine, _diff("a.py", (1, 3)))
    assert store.nearest_calls == []
    assert len(bundle) == 3


def test_fallback_uses_first_query_vector_only():
    vectors = [[0.0, 1.0, 0.0], _Q]
    store = FakeStore(nearest=[make_chunk("z.py", 1, 1, embedding=_Q)], chunks=[])
    engine = ContextEngine(store, FakeEmbedder(vectors=vectors), RetrieverConfig(fallback_k=50))
    bundle = _search(engine)
    assert store.nearest_calls == [([0.0, 1.0, 0.0], 50)]
    # Scored against the first vector only, so cosine is 0 rather than 1.
    assert bundle[0].score == pytest.approx(0.0)


# ------------------------------------------------------------------
# Scoring + aggregation through the engine
# ------------------------------------------------------------------


def test_multiple_vectors_keep_best_score_per_location():
    chunk = make_chunk("a.py", 1, 5, embedding=_Q, importance=2.0)
    store = FakeStore(chunks=[chunk], nearest=[])
    engine = ContextEngine(store, FakeEmbedder(vectors=[[0.0, 1.0, 0.0], _Q]))
    bundle = _search(engine, _diff("a.py", (1, 5)))
    assert len(bundle) == 1
    assert bundle[0].score == pytest.approx(2.0)


def test_chunk_found_by_hunk_and_fallback_appears_once():
    chunk = make_chunk("a.py", 1, 5)
    store = FakeStore(chunks=[chunk], nearest=[chunk])
    engine = ContextEngine(store, FakeEmbedder())
    bundle = _search(engine, _diff("a.py", (2, 3)))
    assert [m.key for m in bundle] == ["a.py:1-5"]


def test_bundle_capped_and_sorted():
    chunks = [
        make_chunk(f"f{i}.py", 1, 2, embedding=_vec_at(i / 20)) for i in range(20)
    ]
    store = FakeStore(chunks=[], nearest=chunks)
    engine = ContextEngine(store, FakeEmbedder())
    bundle = _search(engine)
    scores = [m.score for m in bundle]
    assert len(bundle) == 10
    assert scores == sorted(scores, reverse=True)
    assert bundle[0].filepath == "f19.py"


def test_empty_store_yields_empty_bundle():
    engine = ContextEngine(FakeStore(), FakeEmbedder())
    assert _search(engine, _diff("a.py", (1, 2))) == []


def test_result_independent_of_hunk_completion_order():
    chunks = [make_chunk(f"f{i}.py", 1, 2, embedding=_vec_at(0.1 * i)) for i in range(1, 8)]

    class SkewedStore(FakeStore):
        async def search_overlapping(self, filepath, start_line, end_line, limit):
            # Later files answer first.
            await asyncio.sleep(0.001 * (10 - int(filepath[1])))
            return await super().search_overlapping(filepath, start_line, end_line, limit)

    parsed = [FileDiff(c.filepath, [DiffHunk(c.filepath, 1, 2)]) for c in chunks]
    fast = _search(ContextEngine(FakeStore(chunks=chunks), FakeEmbedder()), parsed)
    skewed = _search(ContextEngine(SkewedStore(chunks=chunks), FakeEmbedder()), parsed)
    assert [m.key for m in fast] == [m.key for m in skewed]


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


def test_failed_hunk_query_is_skipped(caplog):
    good = [make_chunk("good.py", 1, 2)]
    store = FakeStore(chunks=good, nearest=[], failing_files={"bad.py"})
    engine = ContextEngine(store, FakeEmbedder())
    parsed = _diff("bad.py", (1, 2)) + _diff("good.py", (1, 2))
    with caplog.at_level("WARNING", logger="diffscope.rag.engine"):
        bundle = _search(engine, parsed)
    assert [m.filepath for m in bundle] == ["good.py"]
    assert "bad.py" in caplog.text


def test_all_hunk_queries_failing_falls_back():
    store = FakeStore(nearest=[make_chunk("z.py", 1, 2)], failing_files={"a.py"})
    engine = ContextEngine(store, FakeEmbedder())
    bundle = _search(engine, _diff("a.py", (1, 2), (5, 6)))
    assert store.overlap_calls == 2
    assert [m.filepath for m in bundle] == ["z.py"]


def test_fallback_failure_is_fatal():
    store = FakeStore(nearest_error=BackendQueryError("index offline"))
    engine = ContextEngine(store, FakeEmbedder())
    with pytest.raises(BackendQueryError, match="index offline"):
        _search(engine)


def test_embedding_failure_is_fatal_and_skips_store():
    store = FakeStore(chunks=[make_chunk()])
    engine = ContextEngine(store, FakeEmbedder(error=EmbeddingError("quota")))
    with pytest.raises(EmbeddingError):
        _search(engine, _diff("a.py", (1, 2)))
    assert store.overlap_calls == 0
    assert store.nearest_calls == []


def test_empty_vector_set_is_embedding_error():
    engine = ContextEngine(FakeStore(), FakeEmbedder(vectors=[]))
    with pytest.raises(EmbeddingError):
        _search(engine)


def test_embeds_query_once_per_request():
    embedder = FakeEmbedder()
    store = FakeStore(chunks=[make_chunk("a.py", 1, 2)])
    engine = ContextEngine(store, embedder)
    _search(engine, _diff("a.py", (1, 2), (3, 4), (5, 6)), text="desc\ndiff")
    assert embedder.calls == ["desc\ndiff"]


# ------------------------------------------------------------------
# Concurrency + deadline
# ------------------------------------------------------------------


def test_hunk_queries_bounded_by_max_concurrency():
    store = FakeStore(chunks=[], nearest=[], delay=0.01)
    engine = ContextEngine(store, FakeEmbedder(), RetrieverConfig(max_concurrency=2))
    _search(engine, _diff("a.py", *[(i, i) for i in range(1, 9)]))
    assert store.overlap_calls == 8
    assert store.max_in_flight == 2


def test_deadline_raises_timeout_error():
    store = FakeStore(chunks=[], delay=5.0)
    engine = ContextEngine(store, FakeEmbedder())
    with pytest.raises(RetrievalTimeoutError) as exc_info:
        _search(engine, _diff("a.py", (1, 2)), timeout=0.05)
    assert isinstance(exc_info.value, TimeoutError)
    assert isinstance(exc_info.value, ContextError)


def test_deadline_defaults_to_config():
    store = FakeStore(chunks=[], delay=5.0)
    engine = ContextEngine(store, FakeEmbedder(), RetrieverConfig(timeout_seconds=0.05))
    with pytest.raises(RetrievalTimeoutError):
        _search(engine, _diff("a.py", (1, 2)))


def test_no_deadline_when_timeout_none():
    store = FakeStore(chunks=[make_chunk("a.py", 1, 2)], delay=0.01)
    engine = ContextEngine(store, FakeEmbedder(), RetrieverConfig(timeout_seconds=0.001))
    bundle = _search(engine, _diff("a.py", (1, 2)), timeout=None)
    assert len(bundle) == 1


def test_cancellation_propagates_and_discards_partial_matches():
    store = FakeStore(chunks=[make_chunk("a.py", 1, 2)], delay=5.0)
    engine = ContextEngine(store, FakeEmbedder())

    async def run():
        task = asyncio.create_task(
            engine.search_context("query", _diff("a.py", (1, 2)), timeout=None)
        )
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return task

    task = asyncio.run(run())
    assert task.cancelled()
    assert store.overlap_calls == 1
    assert store.nearest_calls == []


def test_search_context_sync():
    store = FakeStore(nearest=[make_chunk("z.py", 1, 2)])
    engine = ContextEngine(store, FakeEmbedder())
    assert [m.filepath for m in engine.search_context_sync("q")] == ["z.py"]


# ------------------------------------------------------------------
# End-to-end over a real sqlite-vec index
# ------------------------------------------------------------------


_E2E_DIFF = """\
--- a/a.py
+++ b/a.py
@@ -10,11 +10,11 @@
 l10
 l11
 l12
 l13
 l14
-l15
+l15 = l15 + 1
 l16
 l17
 l18
 l19
 l20
"""


@pytest.fixture
def e2e_store(tmp_db, tmp_db_path):
    content = "\n".join(f"l{n}" for n in range(1, 121))
    add_chunk(tmp_db, IndexedChunk(
        id="c1", filepath="a.py", start_line=8, end_line=22, content=content,
        embedding=_vec_at(0.9), importance=2.0, function_name="handle",
    ))
    add_chunk(tmp_db, IndexedChunk(
        id="c2", filepath="a.py", start_line=100, end_line=110, content=content,
        embedding=_vec_at(0.95), importance=1.0,
    ))
    return SqliteVecStore(tmp_db_path, TEST_MODEL)


def test_end_to_end_hunk_scoped_excludes_non_overlapping(e2e_store):
    parsed = extract_hunks(_E2E_DIFF)
    assert parsed == _diff("a.py", (10, 20))

    engine = ContextEngine(e2e_store, FakeEmbedder(), RetrieverConfig(min_hunk_matches=1))
    bundle = _search(engine, parsed, text=build_query_text("fix off-by-one", _E2E_DIFF))

    assert [m.key for m in bundle] == ["a.py:8-22"]
    assert bundle[0].score == pytest.approx(1.8, abs=1e-5)
    assert bundle[0].function_name == "handle"


def test_end_to_end_fallback_merges_below_threshold(e2e_store):
    engine = ContextEngine(e2e_store, FakeEmbedder())
    bundle = _search(engine, extract_hunks(_E2E_DIFF))
    assert [m.key for m in bundle] == ["a.py:8-22", "a.py:100-110"]
    assert [m.score for m in bundle] == [
        pytest.approx(1.8, abs=1e-5),
        pytest.approx(0.95, abs=1e-5),
    ]
