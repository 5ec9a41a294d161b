"""Typed errors raised by the retrieval core.

The caller must be able to tell "no relevant code" (an empty bundle) apart
from "retrieval broke" (one of these exceptions).
"""

from __future__ import annotations


class ContextError(RuntimeError):
    """Base class for all context-retrieval failures."""


class EmbeddingError(ContextError):
    """The query text could not be turned into a vector set. Always fatal."""


class BackendQueryError(ContextError):
    """A vector-store query failed.

    Skipped for a single hunk-scoped query; fatal for the fallback query.
    """


class MalformedDiffError(ContextError):
    """A hunk header or file entry in a diff could not be parsed.

    Raised and absorbed inside the extractor; the entry is skipped.
    """


class RetrievalTimeoutError(ContextError, TimeoutError):
    """The retrieval deadline expired; partial results were discarded."""
