"""diffscope: diff-aware context retrieval for code review."""

from diffscope.diff.parser import DiffHunk, FileDiff, extract_hunks
from diffscope.errors import (
    BackendQueryError,
    ContextError,
    EmbeddingError,
    MalformedDiffError,
    RetrievalTimeoutError,
)
from diffscope.rag.engine import ContextEngine
from diffscope.rag.formatter import format_context

__all__ = [
    "BackendQueryError",
    "ContextEngine",
    "ContextError",
    "DiffHunk",
    "EmbeddingError",
    "FileDiff",
    "MalformedDiffError",
    "RetrievalTimeoutError",
    "extract_hunks",
    "format_context",
]
