"""Render a ContextBundle as the text block fed to the reviewer."""

from __future__ import annotations

from diffscope.rag.aggregator import ContextBundle
from diffscope.rag.scoring import ScoredMatch

UNKNOWN_FUNCTION = "unknown"


def format_context(bundle: ContextBundle) -> str:
    """Format each match as a block and join them with a blank line, in bundle order.

    Block layout::

        File: a.py
        Lines: 8-22
        Function: handle_request
        Importance: 2.0
        ---
        <lines 8..22 of the chunk content>
    """
    return "\n\n".join(_format_match(m) for m in bundle)


def slice_lines(content: str, start_line: int, end_line: int) -> str:
    """Return lines [start_line, end_line] (1-based, inclusive) of *content*.

    Out-of-range bounds are clamped into the content (a stale index may point
    past the end of the stored text); a non-empty content always yields at
    least one line.
    """
    lines = content.split("\n")
    last = len(lines)
    lo = min(max(start_line, 1), last)
    hi = min(max(end_line, lo), last)
    return "\n".join(lines[lo - 1 : hi])


def _format_match(m: ScoredMatch) -> str:
    snippet = slice_lines(m.content, m.start_line, m.end_line)
    return (
        f"File: {m.filepath}\n"
        f"Lines: {m.start_line}-{m.end_line}\n"
        f"Function: {m.function_name or UNKNOWN_FUNCTION}\n"
        f"Importance: {m.importance}\n"
        "---\n"
        f"{snippet}\n"
    )
