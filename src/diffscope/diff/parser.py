"""Diff hunk extraction: unified diff text → per-file changed line ranges.

Primary path: ``unidiff.PatchSet``.
Fallback: a header-only scanner over ``diff --git`` / ``---`` / ``+++`` /
``@@ -a,b +c,d @@`` lines, used when PatchSet rejects the text (Bitbucket and
hand-edited diffs often carry hunk bodies whose line counts do not match
their headers). The scanner trusts header numbers. Body lines are only
counted off against them, so a removed ``--- x`` line next to an added
``+++ y`` line is never mistaken for a file header. A body ends early at the
next ``@@`` or ``diff`` line.

Line ranges are 1-based, inclusive, in the *new* version of each file.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from unidiff import PatchSet, UnidiffParseError

from diffscope.errors import MalformedDiffError

logger = logging.getLogger(__name__)

_DEV_NULL = "/dev/null"

_DIFF_GIT_RE = re.compile(r"^diff --git (?P<source>\S+) (?P<target>\S+)")
_HUNK_HEADER_RE = re.compile(
    r"^@@ -\d+(?:,(?P<old_length>\d+))? \+(?P<start>\d+)(?:,(?P<length>\d+))? @@"
)
_BINARY_FILES_RE = re.compile(r"^Binary files (?P<source>.+?) and (?P<target>.+?) differ$")
_GIT_BINARY_RE = re.compile(r"^GIT binary patch")


@dataclass
class DiffHunk:
    """A contiguous range of changed lines in the new version of a file."""

    filepath: str
    start_line: int
    end_line: int


@dataclass
class FileDiff:
    """All hunks for one file, in diff order. Empty for binary / hunk-less files."""

    filepath: str
    hunks: list[DiffHunk] = field(default_factory=list)


def extract_hunks(diff_text: str) -> list[FileDiff]:
    """Parse *diff_text* into one FileDiff per file, in diff order.

    Never raises on malformed input: unparseable hunk headers are logged and
    skipped, and a diff with no usable files returns ``[]``.
    """
    if not diff_text or not diff_text.strip():
        return []

    try:
        patch = PatchSet.from_string(diff_text)
    except UnidiffParseError as exc:
        logger.info("unidiff rejected diff (%s); scanning hunk headers instead", exc)
        return _scan_headers(diff_text)

    files: list[FileDiff] = []
    for patched_file in patch:
        filepath = _resolve_path(patched_file.source_file, patched_file.target_file)
        if filepath is None:
            logger.warning("Skipping diff entry with no usable path")
            continue
        entry = FileDiff(filepath=filepath)
        if not patched_file.is_binary_file:
            for hunk in patched_file:
                entry.hunks.append(
                    _make_hunk(filepath, hunk.target_start, hunk.target_length)
                )
        files.append(entry)
    return files


def new_range(new_start: int, new_length: int | None) -> tuple[int, int]:
    """Return the inclusive ``(start, end)`` range covered by a hunk.

    ``end = start + length - 1``, with a missing length treated as 0. A pure
    deletion (length 0) collapses to the single point ``(start, start)`` so
    the range always satisfies ``start <= end``.
    """
    length = new_length or 0
    end = new_start + length - 1
    return new_start, max(new_start, end)


# ------------------------------------------------------------------
# Header scanner fallback
# ------------------------------------------------------------------


@dataclass
class _PendingFile:
    source: str | None = None
    target: str | None = None
    binary: bool = False
    hunks: list[tuple[int, int | None]] = field(default_factory=list)

    @property
    def closed(self) -> bool:
        """True once the entry can no longer take a new ``---``/``+++`` header."""
        return self.binary or bool(self.hunks)


def _scan_headers(diff_text: str) -> list[FileDiff]:
    """Extract hunks from header lines only. See module docstring."""
    lines = diff_text.splitlines()
    pending: list[_PendingFile] = []
    current: _PendingFile | None = None
    # Body lines still owed to the open hunk, per side.
    old_left = new_left = 0

    i = 0
    while i < len(lines):
        line = lines[i]

        if (old_left or new_left) and not line.startswith(("@@", "diff ")):
            if line.startswith("-"):
                old_left -= 1
            elif line.startswith("+"):
                new_left -= 1
            elif not line.startswith("\\"):
                old_left -= 1
                new_left -= 1
            old_left, new_left = max(old_left, 0), max(new_left, 0)
            i += 1
            continue
        old_left = new_left = 0

        match = _DIFF_GIT_RE.match(line)
        if match:
            current = _PendingFile(source=match["source"], target=match["target"])
            pending.append(current)
            i += 1
            continue

        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            if current is None or current.closed:
                current = _PendingFile()
                pending.append(current)
            current.source = line[4:]
            current.target = lines[i + 1][4:]
            i += 2
            continue

        if line.startswith("@@"):
            if current is None:
                logger.warning("Skipping hunk header before any file header: %r", line)
            else:
                try:
                    start, length, old_length = _parse_hunk_header(line)
                except MalformedDiffError as exc:
                    logger.warning("Skipping malformed hunk: %s", exc)
                else:
                    current.hunks.append((start, length))
                    old_left, new_left = old_length, 1 if length is None else length
            i += 1
            continue

        match = _BINARY_FILES_RE.match(line)
        if match:
            if current is None or current.closed:
                current = _PendingFile()
                pending.append(current)
            current.source = current.source or match["source"]
            current.target = current.target or match["target"]
            current.binary = True
        elif _GIT_BINARY_RE.match(line) and current is not None:
            current.binary = True

        i += 1

    files: list[FileDiff] = []
    for item in pending:
        filepath = _resolve_path(item.source, item.target)
        if filepath is None:
            logger.warning("Skipping diff entry with no usable path")
            continue
        files.append(
            FileDiff(
                filepath=filepath,
                hunks=[_make_hunk(filepath, start, length) for start, length in item.hunks],
            )
        )
    return files


def _parse_hunk_header(line: str) -> tuple[int, int | None, int]:
    """Return ``(new_start, new_length, old_length)``; a missing count means one line."""
    match = _HUNK_HEADER_RE.match(line)
    if match is None:
        raise MalformedDiffError(f"unrecognised hunk header {line!r}")
    length = match["length"]
    old_length = match["old_length"]
    return (
        int(match["start"]),
        int(length) if length is not None else None,
        int(old_length) if old_length is not None else 1,
    )


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _make_hunk(filepath: str, new_start: int, new_length: int | None) -> DiffHunk:
    start, end = new_range(new_start, new_length)
    return DiffHunk(filepath=filepath, start_line=start, end_line=end)


def _resolve_path(source: str | None, target: str | None) -> str | None:
    """Prefer the post-change path; deleted files fall back to the pre-change path."""
    return _clean_path(target, "b/") or _clean_path(source, "a/")


def _clean_path(raw: str | None, prefix: str) -> str | None:
    if not raw:
        return None
    # Plain `diff -u` output appends a tab + timestamp to the path.
    path = raw.split("\t", 1)[0].strip()
    if not path or path == _DEV_NULL:
        return None
    if path.startswith(prefix):
        path = path[len(prefix):]
    return path.lstrip("/") or None
