"""Review output writer: source footnotes + path guards + atomic write.

Responsibilities:
  1. Append the snippet locations the review was grounded on.
  2. Validate output path: relative paths are confined to CWD.
  3. Overwrite protection: if file exists, prompt user (--yes skips).
  4. Write atomically (temp file → rename).
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import typer

from diffscope.rag.aggregator import ContextBundle


def add_sources(content: str, bundle: ContextBundle) -> str:
    """Append a footnote list of the context snippets to *content*.

    Format:
      [^1]: a.py:8-22 (handle_request), score 1.800
    """
    if not bundle:
        return content

    footnotes = [
        f"[^{i}]: {m.key}"
        + (f" ({m.function_name})" if m.function_name else "")
        + f", score {m.score:.3f}"
        for i, m in enumerate(bundle, start=1)
    ]
    return content.rstrip() + "\n\n---\n\n" + "\n".join(footnotes)


def validate_output_path(output: str, allowed_base: Path | None = None) -> Path:
    """Normalize and validate the output path.

    Absolute paths are accepted as-is. Relative paths are confined to
    *allowed_base* (default: CWD); traversal like '../../etc/passwd' is blocked.

    Raises:
        ValueError: If a relative path escapes the allowed base directory.
    """
    path = Path(output)

    if path.is_absolute():
        return path.resolve()

    if allowed_base is None:
        allowed_base = Path.cwd()

    allowed_base = allowed_base.resolve()
    resolved = (allowed_base / path).resolve()

    try:
        resolved.relative_to(allowed_base)
    except ValueError:
        raise ValueError(
            f"Output path '{output}' resolves outside the allowed directory "
            f"('{allowed_base}'). Path traversal is not permitted."
        ) from None

    return resolved


def check_overwrite(path: Path, yes: bool) -> bool:
    """Return True if we should proceed with writing, False if user declines."""
    if yes or not path.exists():
        return True

    return typer.confirm(f"  File exists: {path.name}\n  Overwrite?", default=False)


def write_output(path: Path, content: str) -> None:
    """Write *content* to *path* atomically (temp → rename).

    Creates parent directories if needed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
