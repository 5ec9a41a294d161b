"""Unified-diff parsing into per-file changed line ranges."""

from diffscope.diff.parser import DiffHunk, FileDiff, extract_hunks

__all__ = ["DiffHunk", "FileDiff", "extract_hunks"]
