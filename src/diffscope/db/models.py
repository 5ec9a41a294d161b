"""Domain models for the chunk index."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class IndexedChunk:
    """A stored, pre-embedded segment of repository code.

    Written by the indexing pipeline; read-only to diffscope.
    """

    id: str
    filepath: str
    start_line: int
    end_line: int
    content: str
    embedding: list[float] = field(default_factory=list)
    importance: float = 1.0
    function_name: str | None = None
