"""Query embedding: text → ordered, non-empty sequence of vectors.

Embedding endpoints cap input size, so a long query (description + full diff)
is split into consecutive windows and each window becomes one vector. The
retriever scores every vector independently; vectors are never averaged.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from diffscope.errors import EmbeddingError
from diffscope.rag.llm_client import aembed_many

logger = logging.getLogger(__name__)


@runtime_checkable
class QueryEmbedder(Protocol):
    """Turns arbitrary text into one or more fixed-dimension vectors."""

    async def embed(self, text: str) -> list[list[float]]:
        """Return a non-empty list of vectors for *text*.

        Raises:
            EmbeddingError: If no vector set can be produced.
        """
        ...


class LiteLLMEmbedder:
    """``QueryEmbedder`` backed by ``litellm.aembedding``.

    Args:
        model: LiteLLM embedding model string (provider/model format). Must be
            the model the index was built with.
        max_input_chars: Upper bound on characters per embedded window.
        num_retries: Retries on transient provider errors.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        max_input_chars: int = 24_000,
        num_retries: int = 3,
    ) -> None:
        if max_input_chars < 1:
            raise ValueError("max_input_chars must be >= 1")
        self.model = model
        self.max_input_chars = max_input_chars
        self.num_retries = num_retries

    async def embed(self, text: str) -> list[list[float]]:
        windows = split_windows(text, self.max_input_chars)
        if not windows:
            raise EmbeddingError("Cannot embed an empty query text.")

        logger.debug("Embedding query as %d window(s) with %s", len(windows), self.model)
        try:
            vectors = await aembed_many(self.model, windows, num_retries=self.num_retries)
        except Exception as exc:
            raise EmbeddingError(f"Embedding call to '{self.model}' failed: {exc}") from exc

        if not vectors or any(not v for v in vectors):
            raise EmbeddingError(f"Embedding model '{self.model}' returned no vectors.")
        return vectors


def split_windows(text: str, max_chars: int) -> list[str]:
    """Split *text* into consecutive windows of at most *max_chars* characters.

    Breaks on line boundaries where possible; a single line longer than
    *max_chars* is hard-split. Whitespace-only windows are dropped.
    """
    if not text.strip():
        return []

    windows: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > max_chars:
            if current:
                windows.append(current)
                current = ""
            windows.append(line[:max_chars])
            line = line[max_chars:]
        if len(current) + len(line) > max_chars:
            windows.append(current)
            current = ""
        current += line
    if current:
        windows.append(current)

    return [w for w in windows if w.strip()]
